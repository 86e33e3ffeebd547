"""
Unit tests for the SeqHMM HMM module.

Tests cover:
- Forward and backward tables and their likelihood agreement
- Baum-Welch E-step, re-estimation and the convergence loop
- Viterbi decoding and tie-breaking
- SequenceHMM posterior and scoring methods
- Multi-restart training
"""
import itertools
import warnings

import pytest
import numpy as np

from seqhmm.core.hmm import (
    SequenceHMM,
    SufficientStats,
    TrainingMonitor,
    backward,
    baum_welch_step,
    expected_counts,
    forward,
    likelihood_from_backward,
    reestimate,
    train_model,
    viterbi,
)
from seqhmm.core.params import HMMParams
from seqhmm.errors import InvalidInputError, NonConvergenceWarning, NumericalInstabilityError
from seqhmm.simulate import sample_sequence


def brute_force_log_prob(seq, params):
    """Sum P(path, seq) over every state path (tiny inputs only)."""
    obs = params.encode(seq)
    start, trans, emit = params.to_probabilities()
    total = 0.0
    for path in itertools.product(range(params.n_states), repeat=len(obs)):
        p = start[path[0]] * emit[path[0], obs[0]]
        for t in range(1, len(obs)):
            p *= trans[path[t - 1], path[t]] * emit[path[t], obs[t]]
        total += p
    return np.log(total)


class TestForward:
    def test_single_symbol_row_is_start_plus_emission(self, uneven_params):
        alpha, _ = forward("G", uneven_params)
        assert alpha.shape == (1, 2)
        for s in range(2):
            assert alpha[0, s] == (uneven_params.log_startprob[s] +
                                   uneven_params.log_emissionprob[s, 2])

    def test_matches_brute_force(self, uneven_params):
        seq = "ACGTTA"
        _, log_prob = forward(seq, uneven_params)
        assert log_prob == pytest.approx(brute_force_log_prob(seq, uneven_params), abs=1e-9)

    def test_three_states(self, three_state_params):
        seq = "ATTGCA"
        _, log_prob = forward(seq, three_state_params)
        assert log_prob == pytest.approx(brute_force_log_prob(seq, three_state_params), abs=1e-9)

    def test_accepts_code_array(self, uneven_params):
        _, from_str = forward("ACGT", uneven_params)
        _, from_codes = forward(np.array([0, 1, 2, 3]), uneven_params)
        assert from_str == from_codes

    def test_empty_sequence(self, uneven_params):
        with pytest.raises(InvalidInputError):
            forward("", uneven_params)

    def test_unknown_symbol(self, uneven_params):
        with pytest.raises(InvalidInputError, match="position 2"):
            forward("ACNT", uneven_params)

    def test_code_out_of_range(self, uneven_params):
        with pytest.raises(InvalidInputError, match="outside"):
            forward(np.array([0, 4]), uneven_params)

    def test_impossible_sequence(self):
        # 'C' can only be emitted by state 1, which is unreachable
        params = HMMParams.from_emission_tables(
            [1.0, 0.0], [[1.0, 0.0], [0.0, 1.0]],
            [{'A': 1.0}, {'A': 0.5, 'C': 0.5}])
        with pytest.raises(NumericalInstabilityError) as excinfo:
            forward("AAC", params)
        assert excinfo.value.position == 2
        assert "position=2" in str(excinfo.value)


class TestBackward:
    def test_last_row_is_zero(self, uneven_params):
        beta = backward("ACGTAC", uneven_params)
        np.testing.assert_array_equal(beta[-1], [0.0, 0.0])

    def test_likelihood_agrees_with_forward(self, uneven_params, rng):
        symbols, _ = sample_sequence(uneven_params, 300, rng=rng)
        _, log_prob = forward(symbols, uneven_params)
        beta = backward(symbols, uneven_params)
        assert likelihood_from_backward(beta, symbols, uneven_params) == pytest.approx(
            log_prob, abs=1e-6)

    def test_likelihood_agrees_three_states(self, three_state_params):
        seq = "ACGTACGGTTAC" * 20
        _, log_prob = forward(seq, three_state_params)
        beta = backward(seq, three_state_params)
        assert likelihood_from_backward(beta, seq, three_state_params) == pytest.approx(
            log_prob, abs=1e-6)


class TestExpectedCounts:
    def test_posteriors_sum_to_one(self, uneven_params):
        stats = expected_counts("ACGTTGCA", uneven_params)
        # Start counts are gamma at t=0
        assert np.exp(stats.log_start).sum() == pytest.approx(1.0, abs=1e-9)
        # Emission denominators sum to the sequence length
        assert np.exp(stats.log_emit_den).sum() == pytest.approx(8.0, abs=1e-9)
        # Transition denominators cover positions 0..T-2
        assert np.exp(stats.log_trans_den).sum() == pytest.approx(7.0, abs=1e-9)

    def test_numerators_consistent_with_denominators(self, uneven_params):
        stats = expected_counts("ACGTTGCAAT", uneven_params)
        np.testing.assert_allclose(np.exp(stats.log_trans_num).sum(axis=1),
                                   np.exp(stats.log_trans_den), atol=1e-9)
        np.testing.assert_allclose(np.exp(stats.log_emit_num).sum(axis=1),
                                   np.exp(stats.log_emit_den), atol=1e-9)

    def test_combine(self, uneven_params):
        a = expected_counts("ACGT", uneven_params)
        b = expected_counts("TTGA", uneven_params)
        both = a.combine(b)
        assert both.n_sequences == 2
        assert both.log_prob == pytest.approx(a.log_prob + b.log_prob)
        assert np.exp(both.log_emit_den).sum() == pytest.approx(8.0, abs=1e-9)


class TestReestimate:
    def test_rows_are_distributions(self, uneven_params):
        new, _ = baum_welch_step("ACGTTGCAAGCT", uneven_params)
        new.validate(atol=1e-9)

    def test_update_selects_tables(self, uneven_params):
        stats = expected_counts("ACGTTGCAAGCT", uneven_params)
        new = reestimate(stats, uneven_params, update='t')
        np.testing.assert_array_equal(new.log_startprob, uneven_params.log_startprob)
        np.testing.assert_array_equal(new.log_emissionprob, uneven_params.log_emissionprob)
        assert not np.allclose(new.log_transmat, uneven_params.log_transmat)

    def test_unvisited_state_keeps_row(self):
        # State 1 is unreachable, so its expected occupancy is zero
        params = HMMParams.from_probabilities(
            [1.0, 0.0], [[1.0, 0.0], [0.5, 0.5]],
            [[0.5, 0.5], [0.9, 0.1]], 'AB')
        new, _ = baum_welch_step("ABAB", params)
        np.testing.assert_allclose(np.exp(new.log_transmat[1]), [0.5, 0.5])
        np.testing.assert_allclose(np.exp(new.log_emissionprob[1]), [0.9, 0.1])
        assert not np.any(np.isnan(new.log_transmat))

    def test_step_does_not_decrease_likelihood(self, uneven_params):
        seq = "AACCGGTTACGTAAAACCCC"
        params = uneven_params
        last = -np.inf
        for _ in range(10):
            params, log_prob = baum_welch_step(seq, params)
            assert log_prob >= last - 1e-9
            last = log_prob


class TestViterbi:
    def test_aaaattttggggcccc(self, at_gc_params):
        path, _ = viterbi("AAAATTTTGGGGCCCC", at_gc_params)
        np.testing.assert_array_equal(path, [0] * 8 + [1] * 8)
        assert np.count_nonzero(np.diff(path)) == 1

    def test_two_modes_single_switch(self):
        params = HMMParams.from_probabilities(
            [0.5, 0.5], [[0.999, 0.001], [0.001, 0.999]],
            [[0.49, 0.01, 0.01, 0.49],
             [0.01, 0.49, 0.49, 0.01]], 'ACGT')
        rng = np.random.default_rng(7)
        seq = (list(rng.choice(['A', 'T'], size=500)) +
               list(rng.choice(['C', 'G'], size=500)))
        path, _ = viterbi(seq, params)
        switches = np.flatnonzero(np.diff(path)) + 1
        assert len(switches) == 1
        assert abs(switches[0] - 500) <= 5

    def test_tie_goes_to_lowest_state(self):
        params = HMMParams.from_probabilities(
            [0.5, 0.5], [[0.5, 0.5], [0.5, 0.5]],
            [[0.5, 0.5], [0.5, 0.5]], 'AB')
        path, _ = viterbi("ABBA", params)
        np.testing.assert_array_equal(path, [0, 0, 0, 0])

    def test_delta_of_path_is_best_score(self, uneven_params):
        seq = "ACGTTGCA"
        path, delta = viterbi(seq, uneven_params)
        obs = uneven_params.encode(seq)
        start, trans, emit = (uneven_params.log_startprob, uneven_params.log_transmat,
                              uneven_params.log_emissionprob)
        score = start[path[0]] + emit[path[0], obs[0]]
        for t in range(1, len(obs)):
            score += trans[path[t - 1], path[t]] + emit[path[t], obs[t]]
        assert delta[-1, path[-1]] == pytest.approx(score)
        assert delta[-1, path[-1]] == pytest.approx(delta[-1].max())


def _five_symbols_four_columns():
    return HMMParams(np.log([0.5, 0.5]), np.log([[0.5, 0.5], [0.5, 0.5]]),
                     np.log([[0.25] * 4] * 2), 'ACGTN')


def _one_emission_row_two_states():
    return HMMParams(np.log([0.5, 0.5]), np.log([[0.5, 0.5], [0.5, 0.5]]),
                     np.log([[0.25] * 4]), 'ACGT')


class TestStructuralChecks:
    """Mismatched tables are rejected before any kernel runs."""

    ENTRY_POINTS = {
        'forward': lambda seq, p: forward(seq, p),
        'backward': lambda seq, p: backward(seq, p),
        'viterbi': lambda seq, p: viterbi(seq, p),
        'expected_counts': lambda seq, p: expected_counts(seq, p),
        'baum_welch_step': lambda seq, p: baum_welch_step(seq, p),
        'likelihood_from_backward': lambda seq, p: likelihood_from_backward(
            np.zeros((len(seq), 2)), seq, p),
    }

    @pytest.mark.parametrize("entry", sorted(ENTRY_POINTS))
    def test_alphabet_longer_than_emission_columns(self, entry):
        with pytest.raises(InvalidInputError, match="columns"):
            self.ENTRY_POINTS[entry]("ACGTN", _five_symbols_four_columns())

    @pytest.mark.parametrize("entry", sorted(ENTRY_POINTS))
    def test_fewer_emission_rows_than_states(self, entry):
        with pytest.raises(InvalidInputError, match="Emission table has shape"):
            self.ENTRY_POINTS[entry]("ACGT", _one_emission_row_two_states())

    def test_code_array_input_is_checked(self):
        with pytest.raises(InvalidInputError):
            forward(np.array([0, 1, 2, 3]), _one_emission_row_two_states())


class TestSequenceHMM:
    def test_default_initialization(self):
        model = SequenceHMM()
        assert model.n_states == 2
        assert model.params_ is None
        assert model.startprob_ is None

    def test_predict_without_params(self):
        with pytest.raises(InvalidInputError, match="not been set"):
            SequenceHMM().predict("ACGT")

    def test_state_count_mismatch(self, three_state_params):
        model = SequenceHMM(n_states=2)
        model.params_ = three_state_params
        with pytest.raises(InvalidInputError, match="3"):
            model.predict("ACGT")

    def test_probability_views(self, at_gc_params):
        model = SequenceHMM.from_params(at_gc_params)
        np.testing.assert_allclose(model.transmat_, [[0.9, 0.1], [0.1, 0.9]])
        np.testing.assert_allclose(model.startprob_, [0.5, 0.5])

    def test_decode(self, at_gc_params):
        model = SequenceHMM.from_params(at_gc_params)
        path, log_prob = model.decode("AAAATTTTGGGGCCCC")
        assert np.isfinite(log_prob)
        assert log_prob < 0
        np.testing.assert_array_equal(model.predict("AAAATTTTGGGGCCCC"), path)

    def test_predict_proba_rows_sum_to_one(self, uneven_params):
        model = SequenceHMM.from_params(uneven_params)
        proba = model.predict_proba("ACGTTGCAAT")
        assert proba.shape == (10, 2)
        np.testing.assert_allclose(proba.sum(axis=1), 1.0, atol=1e-9)

    def test_predict_with_confidence(self, at_gc_params):
        model = SequenceHMM.from_params(at_gc_params)
        path, confidence = model.predict_with_confidence("AAAATTTTGGGGCCCC")
        assert len(confidence) == len(path)
        assert np.all((confidence >= 0) & (confidence <= 1))
        assert confidence[0] > 0.5

    def test_predict_with_posteriors(self, at_gc_params):
        model = SequenceHMM.from_params(at_gc_params)
        path, posteriors = model.predict_with_posteriors("ACGT")
        assert posteriors.shape == (4, 2)
        assert len(path) == 4

    def test_score_sums_sequences(self, uneven_params):
        model = SequenceHMM.from_params(uneven_params)
        total = model.score("ACGTTTGG", lengths=[4, 4])
        assert total == pytest.approx(forward("ACGT", uneven_params)[1] +
                                      forward("TTGG", uneven_params)[1])

    def test_bad_lengths(self, uneven_params):
        model = SequenceHMM.from_params(uneven_params)
        with pytest.raises(InvalidInputError, match="sum"):
            model.score("ACGT", lengths=[3, 3])


class TestFit:
    def test_converges_and_records_history(self, uneven_params):
        model = SequenceHMM.from_params(uneven_params, tol=1e-3)
        model.fit("AACCGGTTACGTAAAACCCCGGGGTTTT")
        monitor = model.monitor_
        assert monitor.converged
        assert monitor.iterations >= 2
        assert abs(monitor.history[-1] - monitor.history[-2]) <= 1e-3
        model.params_.validate(atol=1e-6)

    def test_warns_at_iteration_cap(self, uneven_params):
        model = SequenceHMM.from_params(uneven_params, n_iter=2, tol=0.0)
        with pytest.warns(NonConvergenceWarning):
            model.fit("AACCGGTTACGTAAAACCCCGGGGTTTT")
        assert model.monitor_.iterations == 2
        model.params_.validate(atol=1e-6)

    def test_single_iteration_always_runs(self, uneven_params):
        model = SequenceHMM.from_params(uneven_params, n_iter=1)
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', NonConvergenceWarning)
            model.fit("ACGT")
        assert model.monitor_.iterations == 1

    def test_multiple_sequences(self, uneven_params):
        model = SequenceHMM.from_params(uneven_params, tol=1e-3)
        model.fit("AAAACCCCGGGGTTTT", lengths=[8, 8])
        assert np.exp(model.params_.log_startprob).sum() == pytest.approx(1.0, abs=1e-9)

    def test_fixed_emissions(self, uneven_params):
        model = SequenceHMM.from_params(uneven_params.copy(), update='st', tol=1e-3)
        model.fit("ACGTACGTTTTT")
        np.testing.assert_array_equal(model.params_.log_emissionprob,
                                      uneven_params.log_emissionprob)

    def test_verbose_progress(self, uneven_params):
        model = SequenceHMM.from_params(uneven_params, tol=1e-2)
        model.fit("ACGTACGTTTTT", verbose=True)
        assert model.monitor_.iterations >= 1

    def test_zero_probability_sequence_aborts_with_context(self):
        # 'C' can only be emitted by state 1, which is unreachable
        params = HMMParams.from_emission_tables(
            [1.0, 0.0], [[1.0, 0.0], [0.0, 1.0]],
            [{'A': 1.0}, {'A': 0.5, 'C': 0.5}])
        model = SequenceHMM.from_params(params)
        with pytest.raises(NumericalInstabilityError) as excinfo:
            model.fit("AAC")
        assert excinfo.value.iteration == 0
        assert excinfo.value.position == 2
        assert "iteration=0" in str(excinfo.value)

    def test_non_finite_reestimate_aborts_with_context(self, uneven_params, monkeypatch):
        import seqhmm.core.hmm as hmm_module
        real_reestimate = hmm_module.reestimate

        def corrupt_reestimate(stats, params, update='ste'):
            new = real_reestimate(stats, params, update)
            new.log_transmat[1, 0] = np.nan
            return new

        monkeypatch.setattr(hmm_module, 'reestimate', corrupt_reestimate)
        model = SequenceHMM.from_params(uneven_params)
        with pytest.raises(NumericalInstabilityError, match="transition") as excinfo:
            model.fit("ACGTACGT")
        assert excinfo.value.iteration == 0
        assert excinfo.value.state == 1

    def test_recovers_generating_parameters(self):
        true_params = HMMParams.from_probabilities(
            [0.5, 0.5], [[0.9, 0.1], [0.2, 0.8]],
            [[0.6, 0.1, 0.1, 0.2],
             [0.1, 0.4, 0.4, 0.1]], 'ACGT')
        symbols, _ = sample_sequence(true_params, 10000, rng=np.random.default_rng(2024))

        init = HMMParams.from_probabilities(
            [0.5, 0.5], [[0.8, 0.2], [0.3, 0.7]],
            [[0.4, 0.2, 0.2, 0.2],
             [0.2, 0.3, 0.3, 0.2]], 'ACGT')
        model = SequenceHMM.from_params(init, n_iter=2000, tol=1e-4)
        model.fit(symbols)

        np.testing.assert_allclose(model.transmat_, np.exp(true_params.log_transmat), atol=0.05)
        np.testing.assert_allclose(model.emissionprob_,
                                   np.exp(true_params.log_emissionprob), atol=0.05)


class TestTrainingMonitor:
    def test_not_converged_with_one_entry(self):
        monitor = TrainingMonitor(tol=0.1)
        monitor.report(-10.0)
        assert not monitor.converged
        assert monitor.delta == float('inf')

    def test_converged_within_tol(self):
        monitor = TrainingMonitor(tol=0.1)
        monitor.report(-10.0)
        monitor.report(-9.95)
        assert monitor.converged
        assert monitor.iterations == 2

    def test_boundary_is_inclusive(self):
        monitor = TrainingMonitor(tol=0.5)
        monitor.report(-10.0)
        monitor.report(-9.5)
        assert monitor.converged


class TestTrainModel:
    def test_returns_best_of_restarts(self, at_gc_params):
        seq = "AAAATTTTGGGGCCCC" * 4
        best, models = train_model(seq, at_gc_params, n_restarts=3, seed=1, tol=1e-2)
        assert len(models) == 3
        best_lp = best.monitor_.history[-1]
        assert all(best_lp >= m.monitor_.history[-1] for m in models)

    def test_emissions_fixed_by_default(self, at_gc_params):
        best, _ = train_model("ACGTACGT", at_gc_params, n_restarts=2, tol=1e-2)
        np.testing.assert_array_equal(best.params_.log_emissionprob,
                                      at_gc_params.log_emissionprob)

    def test_seeded(self, at_gc_params):
        a, _ = train_model("ACGTTTGA", at_gc_params, n_restarts=2, seed=5, tol=1e-2)
        b, _ = train_model("ACGTTTGA", at_gc_params, n_restarts=2, seed=5, tol=1e-2)
        np.testing.assert_array_equal(a.params_.log_transmat, b.params_.log_transmat)


class TestSufficientStats:
    def test_fields(self, uneven_params):
        stats = expected_counts("ACG", uneven_params)
        assert isinstance(stats, SufficientStats)
        assert stats.log_trans_num.shape == (2, 2)
        assert stats.log_emit_num.shape == (2, 4)
        assert stats.n_sequences == 1
