"""
SeqHMM HMM module

Provides:
1. Numba-compiled log-space kernels for K-state discrete HMMs
   (forward, backward, Baum-Welch E-step, Viterbi)
2. Baum-Welch re-estimation of start, transition and emission tables
3. SequenceHMM, a small model class wrapping the kernels with
   fit / predict / score methods
4. train_model(), multi-restart training from random start/transition seeds
"""

import warnings
import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union
from numba import jit
from tqdm import tqdm

from seqhmm.core.logspace import log_add, logsumexp, to_log
from seqhmm.core.params import HMMParams
from seqhmm.defaults import DEFAULT_MAX_ITER, DEFAULT_TOL
from seqhmm.errors import InvalidInputError, NonConvergenceWarning, NumericalInstabilityError


# =============================================================================
# Numba JIT-compiled HMM kernels
# =============================================================================

@jit(nopython=True, cache=False)
def _forward_kernel(obs, log_startprob, log_transmat, log_emissionprob):
    """
    Forward algorithm in log space.

    Args:
        obs: Observation codes (int array)
        log_startprob: (K,) log start probabilities
        log_transmat: (K, K) log transition matrix
        log_emissionprob: (K, n_symbols) log emission probabilities

    Returns:
        alpha: (T, K) forward log-probabilities
        log_prob: log probability of the whole sequence
    """
    T = obs.shape[0]
    K = log_startprob.shape[0]
    alpha = np.empty((T, K))

    for s in range(K):
        alpha[0, s] = log_startprob[s] + log_emissionprob[s, obs[0]]

    for t in range(1, T):
        o = obs[t]
        for s in range(K):
            acc = -np.inf
            for r in range(K):
                acc = log_add(acc, alpha[t - 1, r] + log_transmat[r, s])
            alpha[t, s] = acc + log_emissionprob[s, o]

    log_prob = -np.inf
    for s in range(K):
        log_prob = log_add(log_prob, alpha[T - 1, s])

    return alpha, log_prob


@jit(nopython=True, cache=False)
def _backward_kernel(obs, log_transmat, log_emissionprob):
    """Backward algorithm in log space; beta[T-1] is 0 for every state."""
    T = obs.shape[0]
    K = log_transmat.shape[0]
    beta = np.empty((T, K))

    for s in range(K):
        beta[T - 1, s] = 0.0

    for t in range(T - 2, -1, -1):
        o = obs[t + 1]
        for s in range(K):
            acc = -np.inf
            for r in range(K):
                acc = log_add(acc, log_transmat[s, r] + log_emissionprob[r, o] + beta[t + 1, r])
            beta[t, s] = acc

    return beta


@jit(nopython=True, cache=False)
def _estep_kernel(obs, log_startprob, log_transmat, log_emissionprob):
    """
    Full E-step: forward, backward, and log-space expected counts.

    Returns:
        log_start: (K,) gamma at position 0
        trans_num: (K, K) sum over t < T-1 of xi[t, s, r]
        trans_den: (K,) sum over t < T-1 of gamma[t, s]
        emit_num: (K, n_symbols) sum of gamma[t, s] where obs[t] == symbol
        emit_den: (K,) sum over all t of gamma[t, s]
        log_prob: log probability of the sequence
    """
    alpha, log_prob = _forward_kernel(obs, log_startprob, log_transmat, log_emissionprob)
    beta = _backward_kernel(obs, log_transmat, log_emissionprob)

    T = obs.shape[0]
    K = log_startprob.shape[0]
    M = log_emissionprob.shape[1]

    log_start = np.empty(K)
    trans_num = np.full((K, K), -np.inf)
    trans_den = np.full(K, -np.inf)
    emit_num = np.full((K, M), -np.inf)
    emit_den = np.full(K, -np.inf)

    for t in range(T):
        o = obs[t]
        for s in range(K):
            gamma = alpha[t, s] + beta[t, s] - log_prob
            if t == 0:
                log_start[s] = gamma
            emit_num[s, o] = log_add(emit_num[s, o], gamma)
            emit_den[s] = log_add(emit_den[s], gamma)

            if t < T - 1:
                trans_den[s] = log_add(trans_den[s], gamma)
                o_next = obs[t + 1]
                for r in range(K):
                    xi = (alpha[t, s] + log_transmat[s, r] +
                          log_emissionprob[r, o_next] + beta[t + 1, r] - log_prob)
                    trans_num[s, r] = log_add(trans_num[s, r], xi)

    return log_start, trans_num, trans_den, emit_num, emit_den, log_prob


@jit(nopython=True, cache=False)
def _viterbi_kernel(obs, log_startprob, log_transmat, log_emissionprob):
    """
    Viterbi algorithm for the most likely state sequence.

    Ties go to the lowest state index, both for predecessors and for the
    final state.

    Returns:
        path: Most likely state sequence
        delta: (T, K) best-path log scores
    """
    T = obs.shape[0]
    K = log_startprob.shape[0]
    delta = np.empty((T, K))
    backpointer = np.zeros((T, K), dtype=np.int64)

    for s in range(K):
        delta[0, s] = log_startprob[s] + log_emissionprob[s, obs[0]]

    for t in range(1, T):
        o = obs[t]
        for s in range(K):
            best = delta[t - 1, 0] + log_transmat[0, s]
            best_r = 0
            for r in range(1, K):
                cand = delta[t - 1, r] + log_transmat[r, s]
                if cand > best:
                    best = cand
                    best_r = r
            delta[t, s] = best + log_emissionprob[s, o]
            backpointer[t, s] = best_r

    path = np.zeros(T, dtype=np.int64)
    best_last = 0
    for s in range(1, K):
        if delta[T - 1, s] > delta[T - 1, best_last]:
            best_last = s
    path[T - 1] = best_last

    for t in range(T - 2, -1, -1):
        path[t] = backpointer[t + 1, path[t + 1]]

    return path, delta


# =============================================================================
# Input and numerical checks
# =============================================================================

Observations = Union[str, Sequence[str], np.ndarray]


def _as_codes(X: Observations, params: HMMParams) -> np.ndarray:
    """Encode symbols (or pass through integer codes) as a contiguous int64 array."""
    params.validate()
    if isinstance(X, np.ndarray) and np.issubdtype(X.dtype, np.integer):
        obs = np.ascontiguousarray(X.ravel(), dtype=np.int64)
        if obs.size == 0:
            raise InvalidInputError("Sequence is empty")
        if obs.min() < 0 or obs.max() >= params.n_symbols:
            bad = int(np.flatnonzero((obs < 0) | (obs >= params.n_symbols))[0])
            raise InvalidInputError(
                f"Symbol code {obs[bad]} at position {bad} is outside the emission "
                f"alphabet (size {params.n_symbols})")
        return obs
    return params.encode(X)


def _check_table(table: np.ndarray, total: float, what: str,
                 iteration: Optional[int] = None) -> None:
    """
    Raise NumericalInstabilityError if a DP table produced an unusable total.

    NaN or +inf entries are reported at their first (position, state); a
    total of -inf means some position has zero probability in every state.
    """
    if np.isfinite(total):
        return

    bad = np.isnan(table) | np.isposinf(table)
    if bad.any():
        t, s = np.argwhere(bad)[0]
        raise NumericalInstabilityError(
            f"{what} produced a non-finite log-probability",
            iteration=iteration, position=int(t), state=int(s))

    dead = np.all(np.isneginf(table), axis=1)
    position = int(np.argmax(dead)) if dead.any() else None
    raise NumericalInstabilityError(
        "Sequence has zero probability under the model",
        iteration=iteration, position=position)


def _check_params(params: HMMParams, iteration: Optional[int] = None) -> None:
    """Raise NumericalInstabilityError if re-estimation left NaN/+inf in a table."""
    for name, table in (('start', params.log_startprob[np.newaxis, :]),
                        ('transition', params.log_transmat),
                        ('emission', params.log_emissionprob)):
        bad = np.isnan(table) | np.isposinf(table)
        if bad.any():
            row, _ = np.argwhere(bad)[0]
            state = None if name == 'start' else int(row)
            raise NumericalInstabilityError(
                f"Re-estimated {name} table is not finite",
                iteration=iteration, state=state)


# =============================================================================
# Forward / backward / Viterbi
# =============================================================================

def forward(X: Observations, params: HMMParams) -> Tuple[np.ndarray, float]:
    """
    Forward algorithm in log space.

    Args:
        X: Symbol sequence or int code array
        params: Model parameters

    Returns:
        alpha: (T, K) forward log-probabilities
        log_prob: Total log-likelihood, log_add over the final row
    """
    obs = _as_codes(X, params)
    alpha, log_prob = _forward_kernel(obs, params.log_startprob, params.log_transmat,
                                      params.log_emissionprob)
    _check_table(alpha, log_prob, "Forward pass")
    return alpha, float(log_prob)


def backward(X: Observations, params: HMMParams) -> np.ndarray:
    """
    Backward algorithm in log space.

    Returns:
        beta: (T, K) backward log-probabilities, last row all 0
    """
    obs = _as_codes(X, params)
    beta = _backward_kernel(obs, params.log_transmat, params.log_emissionprob)
    bad = np.isnan(beta) | np.isposinf(beta)
    if bad.any():
        t, s = np.argwhere(bad)[0]
        raise NumericalInstabilityError(
            "Backward pass produced a non-finite log-probability",
            position=int(t), state=int(s))
    return beta


def likelihood_from_backward(beta: np.ndarray, X: Observations,
                             params: HMMParams) -> float:
    """Sequence log-likelihood from the backward table's first row."""
    obs = _as_codes(X, params)
    first = params.log_startprob + params.log_emissionprob[:, obs[0]] + beta[0]
    return float(logsumexp(first))


def viterbi(X: Observations, params: HMMParams) -> Tuple[np.ndarray, np.ndarray]:
    """
    Most likely state path.

    Returns:
        path: (T,) state indices
        delta: (T, K) best-path log scores; delta[t, path[t]] is the score
            of the best path prefix ending at t
    """
    obs = _as_codes(X, params)
    path, delta = _viterbi_kernel(obs, params.log_startprob, params.log_transmat,
                                  params.log_emissionprob)
    _check_table(delta, np.max(delta[-1]), "Viterbi pass")
    return path, delta


# =============================================================================
# Baum-Welch
# =============================================================================

@dataclass
class SufficientStats:
    """Log-space expected counts from one or more E-steps."""
    log_start: np.ndarray
    log_trans_num: np.ndarray
    log_trans_den: np.ndarray
    log_emit_num: np.ndarray
    log_emit_den: np.ndarray
    log_prob: float
    n_sequences: int = 1

    def combine(self, other: 'SufficientStats') -> 'SufficientStats':
        """Merge statistics of independent sequences."""
        return SufficientStats(
            log_start=np.logaddexp(self.log_start, other.log_start),
            log_trans_num=np.logaddexp(self.log_trans_num, other.log_trans_num),
            log_trans_den=np.logaddexp(self.log_trans_den, other.log_trans_den),
            log_emit_num=np.logaddexp(self.log_emit_num, other.log_emit_num),
            log_emit_den=np.logaddexp(self.log_emit_den, other.log_emit_den),
            log_prob=self.log_prob + other.log_prob,
            n_sequences=self.n_sequences + other.n_sequences,
        )


def expected_counts(X: Observations, params: HMMParams,
                    iteration: Optional[int] = None) -> SufficientStats:
    """
    E-step for a single sequence.

    Args:
        X: Symbol sequence or int code array
        params: Current parameters
        iteration: EM iteration, reported in error context

    Returns:
        SufficientStats in log space
    """
    obs = _as_codes(X, params)
    (log_start, trans_num, trans_den,
     emit_num, emit_den, log_prob) = _estep_kernel(
        obs, params.log_startprob, params.log_transmat, params.log_emissionprob)

    if not np.isfinite(log_prob):
        alpha, _ = _forward_kernel(obs, params.log_startprob, params.log_transmat,
                                   params.log_emissionprob)
        _check_table(alpha, log_prob, "Forward pass", iteration=iteration)

    return SufficientStats(log_start, trans_num, trans_den, emit_num, emit_den,
                           float(log_prob))


def reestimate(stats: SufficientStats, params: HMMParams,
               update: str = 'ste') -> HMMParams:
    """
    M-step: new parameter tables from expected counts.

    Args:
        stats: Accumulated E-step statistics
        params: Current parameters (rows of unvisited states are kept)
        update: Tables to re-estimate: 's' start, 't' transitions, 'e' emissions

    Returns:
        New HMMParams
    """
    new = params.copy()

    if 's' in update:
        new.log_startprob = stats.log_start - np.log(stats.n_sequences)

    if 't' in update:
        visited = np.isfinite(stats.log_trans_den)
        new.log_transmat[visited] = (stats.log_trans_num[visited] -
                                     stats.log_trans_den[visited, np.newaxis])

    if 'e' in update:
        visited = np.isfinite(stats.log_emit_den)
        new.log_emissionprob[visited] = (stats.log_emit_num[visited] -
                                         stats.log_emit_den[visited, np.newaxis])

    return new


def baum_welch_step(X: Observations, params: HMMParams,
                    update: str = 'ste') -> Tuple[HMMParams, float]:
    """One Baum-Welch iteration; returns (new_params, log_prob under old params)."""
    stats = expected_counts(X, params)
    new_params = reestimate(stats, params, update)
    _check_params(new_params)
    return new_params, stats.log_prob


# =============================================================================
# Model class
# =============================================================================

class SequenceHMM:
    """
    Discrete-emission HMM over a symbol alphabet.

    Parameters live in params_ (log space). startprob_, transmat_ and
    emissionprob_ are probability-space views for display.
    """

    def __init__(self, n_states: int = 2, n_iter: int = DEFAULT_MAX_ITER,
                 tol: float = DEFAULT_TOL, update: str = 'ste'):
        self.n_states = n_states
        self.params_: Optional[HMMParams] = None

        # Training settings
        self.n_iter = n_iter
        self.tol = tol
        self.update = update
        self.monitor_: Optional[TrainingMonitor] = None

    @classmethod
    def from_params(cls, params: HMMParams, **kwargs) -> 'SequenceHMM':
        """Create a model around existing parameters."""
        params.validate()
        model = cls(n_states=params.n_states, **kwargs)
        model.params_ = params
        return model

    @property
    def startprob_(self) -> Optional[np.ndarray]:
        return None if self.params_ is None else np.exp(self.params_.log_startprob)

    @property
    def transmat_(self) -> Optional[np.ndarray]:
        return None if self.params_ is None else np.exp(self.params_.log_transmat)

    @property
    def emissionprob_(self) -> Optional[np.ndarray]:
        return None if self.params_ is None else np.exp(self.params_.log_emissionprob)

    def _require_params(self) -> HMMParams:
        if self.params_ is None:
            raise InvalidInputError("Model parameters have not been set")
        self.params_.validate()
        if self.params_.n_states != self.n_states:
            raise InvalidInputError(
                f"Model has {self.n_states} states but parameters describe "
                f"{self.params_.n_states}")
        return self.params_

    def _split(self, X: Observations, lengths: Optional[List[int]]) -> List[np.ndarray]:
        """Encode once and split concatenated sequences by length."""
        obs = _as_codes(X, self.params_)
        if lengths is None:
            return [obs]
        if any(n <= 0 for n in lengths):
            raise InvalidInputError("Sequence lengths must be positive")
        if sum(lengths) != len(obs):
            raise InvalidInputError(
                f"Lengths sum to {sum(lengths)} but {len(obs)} observations were given")
        return np.split(obs, np.cumsum(lengths)[:-1])

    def fit(self, X: Observations, lengths: Optional[List[int]] = None,
            verbose: bool = False, desc: str = "EM") -> 'SequenceHMM':
        """
        Train with Baum-Welch until the log-likelihood settles.

        Each iteration computes forward/backward under the current tables,
        records the log-likelihood, and replaces the tables named in
        self.update. Training stops when two consecutive log-likelihoods
        differ by at most tol. If n_iter runs out first a
        NonConvergenceWarning is issued and the last tables are kept.

        Args:
            X: Symbol sequence(s) or code array; concatenated if several
            lengths: Length of each sequence if multiple concatenated
            verbose: Show progress bar for EM iterations
            desc: Description for progress bar

        Returns:
            self
        """
        self._require_params()
        sequences = self._split(X, lengths)

        self.monitor_ = TrainingMonitor(tol=self.tol, n_iter=self.n_iter)

        iterator = range(self.n_iter)
        if verbose:
            iterator = tqdm(iterator, desc=desc, leave=False)

        for iteration in iterator:
            # E-step: expected counts over all sequences
            stats = None
            for obs in sequences:
                seq_stats = expected_counts(obs, self.params_, iteration=iteration)
                stats = seq_stats if stats is None else stats.combine(seq_stats)

            # M-step
            new_params = reestimate(stats, self.params_, self.update)
            _check_params(new_params, iteration=iteration)
            self.params_ = new_params

            self.monitor_.report(stats.log_prob)

            if verbose:
                iterator.set_postfix({'logprob': f'{stats.log_prob:.2e}',
                                      'delta': f'{self.monitor_.delta:.2e}'})

            if self.monitor_.converged:
                break
        else:
            warnings.warn(
                f"Baum-Welch did not converge within {self.n_iter} iterations "
                f"(last change {self.monitor_.delta:.3g}, tol {self.tol})",
                NonConvergenceWarning,
            )

        return self

    def decode(self, X: Observations) -> Tuple[np.ndarray, float]:
        """Viterbi path and its log probability."""
        params = self._require_params()
        path, delta = viterbi(X, params)
        return path, float(delta[-1, path[-1]])

    def predict(self, X: Observations) -> np.ndarray:
        """Most likely state sequence (Viterbi)."""
        path, _ = self.decode(X)
        return path

    def predict_proba(self, X: Observations) -> np.ndarray:
        """
        Posterior probabilities P(state | observations) at each position.

        Returns:
            (T, n_states) array; each row sums to 1
        """
        params = self._require_params()
        obs = _as_codes(X, params)

        alpha, _ = forward(obs, params)
        beta = backward(obs, params)

        log_gamma = alpha + beta
        log_gamma -= logsumexp(log_gamma, axis=1, keepdims=True)
        return np.exp(log_gamma)

    def predict_with_posteriors(self, X: Observations) -> Tuple[np.ndarray, np.ndarray]:
        """Viterbi path plus the full posterior matrix."""
        params = self._require_params()
        obs = _as_codes(X, params)
        path, _ = viterbi(obs, params)
        return path, self.predict_proba(obs)

    def predict_with_confidence(self, X: Observations) -> Tuple[np.ndarray, np.ndarray]:
        """Viterbi path and P(predicted_state | observations) per position."""
        path, posteriors = self.predict_with_posteriors(X)
        confidence = posteriors[np.arange(len(path)), path]
        return path, confidence

    def score(self, X: Observations, lengths: Optional[List[int]] = None) -> float:
        """Log-likelihood of the observations (summed over sequences)."""
        self._require_params()
        return float(sum(forward(obs, self.params_)[1] for obs in self._split(X, lengths)))


class TrainingMonitor:
    """Tracks training progress."""

    def __init__(self, tol: float = DEFAULT_TOL, n_iter: int = DEFAULT_MAX_ITER):
        self.tol = tol
        self.n_iter = n_iter
        self.history: List[float] = []

    def report(self, log_prob: float) -> None:
        self.history.append(float(log_prob))

    @property
    def iterations(self) -> int:
        return len(self.history)

    @property
    def delta(self) -> float:
        if len(self.history) < 2:
            return float('inf')
        return self.history[-1] - self.history[-2]

    @property
    def converged(self) -> bool:
        return len(self.history) >= 2 and abs(self.delta) <= self.tol


# =============================================================================
# Multi-restart training
# =============================================================================

def train_model(X: Observations, params: HMMParams,
                n_restarts: int = 10,
                seed: int = 0,
                lengths: Optional[List[int]] = None,
                n_iter: int = DEFAULT_MAX_ITER,
                tol: float = DEFAULT_TOL,
                update: str = 'st',
                verbose: bool = False) -> Tuple[SequenceHMM, List[SequenceHMM]]:
    """
    Train several models from random start/transition tables and keep the best.

    Emission tables are taken from params for every restart; with the
    default update='st' they stay fixed.

    Args:
        X: Training observations
        params: Supplies the emission table and alphabet
        n_restarts: Number of random initializations
        seed: Base seed; restart i uses numpy.random.default_rng(seed + i)
        lengths: Length of each sequence if multiple concatenated
        n_iter: EM iteration cap per restart
        tol: Convergence tolerance
        update: Tables to re-estimate
        verbose: Show progress bar

    Returns:
        (best_model, all_models)
    """
    k = params.n_states
    best_model = None
    best_logprob = float('-inf')
    all_models = []

    pbar = tqdm(range(n_restarts), desc="Training restarts", disable=not verbose)

    for i in pbar:
        rng = np.random.default_rng(seed + i)

        # Random initialization
        start_probs = rng.dirichlet(np.ones(k))
        transition_probs = rng.dirichlet(np.ones(k), size=k)

        init = HMMParams(to_log(start_probs), to_log(transition_probs),
                         params.log_emissionprob.copy(), params.alphabet)
        model = SequenceHMM.from_params(init, n_iter=n_iter, tol=tol, update=update)
        model.fit(X, lengths=lengths)

        logprob = model.monitor_.history[-1]
        all_models.append(model)

        if logprob > best_logprob:
            best_logprob = logprob
            best_model = model

        if verbose:
            pbar.set_postfix({'best_logprob': f'{best_logprob:.2e}'})

    return best_model, all_models
