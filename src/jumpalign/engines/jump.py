"""
Global jump alignment engine.

Aligns one query against two reference segments (ref1, ref2), allowing at most one transition ("jump")
from ref1 to ref2. The query is always fully consumed: overhangs at either end become soft-clips charged
at the mismatch rate. The dynamic programme is a four-state automaton (MATCH, DELETE, INSERT, JUMP) with
affine gaps, evaluated column by column over ref1 and then ref2.

Examples:
    >>> aligner = JumpAligner(ScoreParams(match=1, mismatch=-1, gap_open=-2, gap_extend=-1, jump_score=-5))
    >>> result = aligner.align('AAAACCCC', 'TTTTAAAA', 'CCCCGGGG')
    >>> str(result.path), result.score
    ('4M1J4M', 3)
"""
from dataclasses import dataclass, fields
from enum import IntEnum
from numbers import Integral
from typing import Union, Sequence, NamedTuple, Hashable
from warnings import warn

import numpy as np

from jumpalign import JumpAlignWarning
from jumpalign.core.alphabet import Alphabet
from jumpalign.containers.alignment import AlignmentResult, Breakpoint, Path, PathOp, RefSegment
from jumpalign.utils.resources import jit


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class ScoreParamsError(ValueError):
    """Raised when scoring constants have the wrong sign or type."""


class AlignmentInputError(ValueError):
    """Raised when the sequences passed to the aligner cannot be aligned (e.g. an empty sequence)."""


class AlignmentStateError(RuntimeError):
    """Raised when the backtrace reaches a state the automaton cannot produce. Indicates a bug, not bad input."""


# Constants ------------------------------------------------------------------------------------------------------------
class AlignState(IntEnum):
    """States of the alignment automaton, also the index of each state in score and pointer cells."""
    MATCH = 0
    DELETE = 1
    INSERT = 2
    JUMP = 3


_M = 0
_D = 1
_I = 2
_J = 3
_N_STATES = 4
_UNSET = 255  # pointer cells outside the computed area
_BAD = -(1 << 61)  # score of disallowed states
_SCORE_LIMIT = 1 << 59  # largest accumulated score magnitude accepted before the sentinel could be reached

_OP_M = PathOp.MATCH.value
_OP_I = PathOp.INSERT.value
_OP_D = PathOp.DELETE.value
_OP_S = PathOp.SOFT_CLIP.value
_OP_J = PathOp.JUMP.value
_NO_OP = 255

SymbolSequence = Union[str, bytes, np.ndarray, Sequence[Hashable]]


# Classes --------------------------------------------------------------------------------------------------------------
@dataclass(frozen=True)
class ScoreParams:
    """
    Scoring constants for jump alignment.

    Attributes:
        match: Score of two equal symbols (positive).
        mismatch: Score of two different symbols and of each soft-clipped query base (negative).
        gap_open: Penalty charged once when a gap opens from the match state (negative).
        gap_extend: Penalty charged for every gap base, including the first (negative).
        jump_score: Penalty charged once when the alignment jumps from ref1 to ref2 (negative).

    Examples:
        >>> ScoreParams(match=1, mismatch=-1)
        ScoreParams(match=1, mismatch=-1, gap_open=-12, gap_extend=-1, jump_score=-25)
    """
    match: int = 2
    mismatch: int = -8
    gap_open: int = -12
    gap_extend: int = -1
    jump_score: int = -25

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, Integral):
                raise ScoreParamsError(f'{f.name} must be an integer, got {value!r}')
            object.__setattr__(self, f.name, int(value))
        if self.match <= 0: raise ScoreParamsError(f'match must be positive, got {self.match}')
        for name in ('mismatch', 'gap_open', 'gap_extend', 'jump_score'):
            if (value := getattr(self, name)) >= 0: raise ScoreParamsError(f'{name} must be negative, got {value}')

    @property
    def max_abs(self) -> int: return max(abs(getattr(self, f.name)) for f in fields(self))


class BackTrace(NamedTuple):
    """Best alignment endpoint found by the fill: the backtrace starts here."""
    score: int
    ref: RefSegment
    query_pos: int
    ref_pos: int
    state: AlignState = AlignState.MATCH


class JumpMatrices:
    """
    Reusable dynamic programming buffers owned by one aligner.

    The score buffer holds two columns (current and previous) of four scores per query position. The two
    pointer buffers hold, for every (query position, reference position) cell of ref1 and ref2, the
    predecessor state of each of the four states, because the backtrace may revisit any earlier cell.
    Buffers only grow; smaller problems reuse the front of the existing allocation.
    """
    SCORE_DTYPE = np.int64
    POINTER_DTYPE = np.uint8
    __slots__ = ('_scores', '_ptr1', '_ptr2')

    def __init__(self):
        self._scores = np.empty(0, dtype=self.SCORE_DTYPE)
        self._ptr1 = np.empty(0, dtype=self.POINTER_DTYPE)
        self._ptr2 = np.empty(0, dtype=self.POINTER_DTYPE)

    def __repr__(self): return f"JumpMatrices(capacity={self.capacity})"

    @property
    def capacity(self) -> tuple[int, int, int]:
        """Allocated cells of the score, ref1 pointer and ref2 pointer buffers."""
        return self._scores.size, self._ptr1.size, self._ptr2.size

    @staticmethod
    def _view(buffer: np.ndarray, shape: tuple[int, ...]) -> tuple[np.ndarray, np.ndarray]:
        size = int(np.prod(shape))
        if buffer.size < size: buffer = np.empty(size, dtype=buffer.dtype)
        return buffer, buffer[:size].reshape(shape)

    def resize(self, query_size: int, ref1_size: int, ref2_size: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Returns row-major views sized for the given problem.

        Args:
            query_size: Query length.
            ref1_size: Length of the first reference segment.
            ref2_size: Length of the second reference segment.

        Returns:
            Views of shape (2, query_size + 1, 4), (query_size + 1, ref1_size + 1, 4) and
            (query_size + 1, ref2_size + 1, 4). Row 0 and column 0 of the pointer views are reset to
            an unset marker; everything else is overwritten by the fill.
        """
        self._scores, scores = self._view(self._scores, (2, query_size + 1, _N_STATES))
        self._ptr1, ptr1 = self._view(self._ptr1, (query_size + 1, ref1_size + 1, _N_STATES))
        self._ptr2, ptr2 = self._view(self._ptr2, (query_size + 1, ref2_size + 1, _N_STATES))
        for ptr in (ptr1, ptr2):
            ptr[0, :, :] = _UNSET
            ptr[:, 0, :] = _UNSET
        return scores, ptr1, ptr2


class JumpAligner:
    """
    Aligns a query against two reference segments with at most one jump from the first to the second.

    An aligner reuses its matrices across calls and is therefore not safe to share between threads; use
    one instance per worker.

    Attributes:
        params (ScoreParams): Scoring constants.

    Examples:
        >>> aligner = JumpAligner()
        >>> aligner.align(query, ref1, ref2).path
    """
    __slots__ = ('params', '_alphabet', '_legacy_delete_extend', '_matrices')

    def __init__(self, params: ScoreParams = None, alphabet: Alphabet = None, legacy_delete_extend: bool = False):
        """
        Args:
            params: Scoring constants; defaults to ``ScoreParams()``.
            alphabet: Optional alphabet used to encode str/bytes sequences (case-insensitive, with aliases).
                Without one, str/bytes symbols are compared byte by byte.
            legacy_delete_extend: Charge the gap-extend penalty twice per deleted ref1 base, reproducing
                the scores of the ELAND-style aligner used by Manta.
        """
        self.params = params if params is not None else ScoreParams()
        self._alphabet = alphabet
        self._legacy_delete_extend = bool(legacy_delete_extend)
        self._matrices = JumpMatrices()
        if self._legacy_delete_extend:
            warn('legacy_delete_extend charges ref1 deletions twice per base; scores will differ from '
                 'the affine gap model', JumpAlignWarning)

    def __repr__(self): return f"JumpAligner({self.params})"

    @property
    def alphabet(self) -> Alphabet: return self._alphabet

    @property
    def legacy_delete_extend(self) -> bool: return self._legacy_delete_extend

    def encode(self, *sequences: SymbolSequence) -> list[np.ndarray]:
        """Encodes sequences into integer arrays sharing one code space."""
        if self._alphabet is not None: return [self._alphabet_encode(s) for s in sequences]
        return encode_symbols(*sequences)

    def _alphabet_encode(self, seq: SymbolSequence) -> np.ndarray:
        if isinstance(seq, np.ndarray): return seq
        if not isinstance(seq, (str, bytes)):
            # Sequences of single-character strings are joined; anything else has no alphabet encoding
            if not all(isinstance(s, str) and len(s) == 1 for s in seq):
                raise AlignmentInputError(f'An alphabet encodes str, bytes or sequences of characters, '
                                          f'got {type(seq).__name__} of other symbols')
            seq = ''.join(seq)
        return self._alphabet.encode(seq)

    def align(self, query: SymbolSequence, ref1: SymbolSequence, ref2: SymbolSequence) -> AlignmentResult:
        """
        Aligns the query against ref1 then ref2, allowing one jump from ref1 to ref2.

        Args:
            query: The sequence to align; always fully consumed.
            ref1: The reference segment aligned before the jump.
            ref2: The reference segment aligned after the jump.

        Returns:
            The best scoring alignment. Ties are resolved in favour of the endpoint found first: the lowest
            ref1 offset, then the lowest ref2 offset, then the fewest query bases aligned before running off
            the end of ref2.

        Raises:
            AlignmentInputError: If any sequence is empty or too long for the score range.
            AlignmentStateError: If the backtrace reaches an impossible state.
        """
        for name, seq in (('query', query), ('ref1', ref1), ('ref2', ref2)):
            if len(seq) == 0: raise AlignmentInputError(f'Cannot align an empty {name} sequence')
        q, r1, r2 = self.encode(query, ref1, ref2)
        if (len(q) + len(r1) + len(r2) + 2) * self.params.max_abs >= _SCORE_LIMIT:
            raise AlignmentInputError(f'Sequences of length {len(q)}, {len(r1)} and {len(r2)} exceed the score range')

        scores, ptr1, ptr2 = self._matrices.resize(len(q), len(r1), len(r2))
        p = self.params
        score, ref, query_pos, ref_pos = _fill_kernel(
            q, r1, r2, scores, ptr1, ptr2,
            p.match, p.mismatch, p.gap_open, p.gap_extend, p.jump_score, self._legacy_delete_extend
        )
        bt = BackTrace(int(score), RefSegment(int(ref)), int(query_pos), int(ref_pos))
        return self._backtrace(bt, ptr1, ptr2, len(q), len(r1))

    @staticmethod
    def _backtrace(bt: BackTrace, ptr1: np.ndarray, ptr2: np.ndarray, query_size: int,
                   ref1_size: int) -> AlignmentResult:
        ops, counts, _, ref_pos, ref, ref1_end, ref2_start, status = _traceback_kernel(
            ptr1, ptr2, bt.ref.value, bt.query_pos, bt.ref_pos, bt.state.value, query_size, ref1_size
        )
        if status != 0:
            raise AlignmentStateError(f'Backtrace from {bt} reached an unknown alignment state')
        # Kernel returns ops in reverse order (End -> Start)
        path = Path.from_arrays(ops[::-1], counts[::-1])
        breakpoint = Breakpoint(int(ref1_end), int(ref2_start)) if ref2_start >= 0 else None
        return AlignmentResult(bt.score, path, int(ref_pos), RefSegment(int(ref)), breakpoint)

    def rescore(self, result: AlignmentResult, query: SymbolSequence, ref1: SymbolSequence,
                ref2: SymbolSequence) -> int:
        """
        Replays an alignment path against the sequences and returns its score.

        Soft-clipped bases are charged at the mismatch rate without comparing them to any reference base,
        as the aligner does. A gap opens only when it follows a MATCH, a soft-clip or the start of the
        path; a gap following another gap or the jump only pays the extend penalty.
        """
        q, r1, r2 = self.encode(query, ref1, ref2)
        p = self.params
        on_ref2 = result.start_ref == RefSegment.REF2
        ref, ref_pos = (r2 if on_ref2 else r1), result.align_start
        query_pos, score, previous = 0, 0, None
        for op, length in result.path:
            if op == PathOp.SOFT_CLIP:
                score += length * p.mismatch
                query_pos += length
            elif op == PathOp.MATCH:
                for k in range(length):
                    score += p.match if q[query_pos + k] == ref[ref_pos + k] else p.mismatch
                query_pos += length
                ref_pos += length
            elif op == PathOp.JUMP:
                score += p.jump_score
                ref, ref_pos, on_ref2 = r2, result.breakpoint.ref2_start, True
            else:
                if previous not in (PathOp.INSERT, PathOp.DELETE, PathOp.JUMP): score += p.gap_open
                extend = p.gap_extend
                if op == PathOp.DELETE:
                    if self._legacy_delete_extend and not on_ref2: extend *= 2
                    ref_pos += length
                else:
                    query_pos += length
                score += length * extend
            previous = op
        return score


# Functions ------------------------------------------------------------------------------------------------------------
def encode_symbols(*sequences: SymbolSequence) -> list[np.ndarray]:
    """
    Encodes sequences into integer arrays such that equal symbols get equal codes.

    str/bytes are compared byte by byte and integer arrays are used as they are. Anything else (or non-ASCII
    text) is treated as a sequence of hashable symbols mapped to codes shared across all sequences.

    Raises:
        AlignmentInputError: If str and bytes sequences are mixed on the hashable-symbol path, where bytes
            iterate as integers and could never equal a character.
    """
    def _fast(seq):
        if isinstance(seq, bytes): return np.frombuffer(seq, dtype=np.uint8)
        if isinstance(seq, str) and seq.isascii(): return np.frombuffer(seq.encode('ascii'), dtype=np.uint8)
        if isinstance(seq, np.ndarray) and np.issubdtype(seq.dtype, np.integer):
            return np.ascontiguousarray(seq).ravel()
        return None

    encoded = [_fast(s) for s in sequences]
    if any(e is None for e in encoded):
        if {type(s) for s in sequences if isinstance(s, (str, bytes))} == {str, bytes}:
            raise AlignmentInputError('Cannot compare non-ASCII str symbols with bytes symbols')
        codes = {}
        encoded = [np.fromiter((codes.setdefault(sym, len(codes)) for sym in s), dtype=np.int64, count=len(s))
                   for s in sequences]
    dtype = np.result_type(*encoded)
    return [e.astype(dtype, copy=False) for e in encoded]


def jump_align(query: SymbolSequence, ref1: SymbolSequence, ref2: SymbolSequence,
               params: ScoreParams = None) -> AlignmentResult:
    """Aligns with a throwaway aligner; prefer a `JumpAligner` instance for repeated calls."""
    return JumpAligner(params).align(query, ref1, ref2)


# Kernels --------------------------------------------------------------------------------------------------------------
@jit(nopython=True, cache=True, nogil=True)
def _fill_kernel(query, ref1, ref2, scores, ptr1, ptr2, match, mismatch, gap_open, gap_extend, jump_score, legacy):
    """
    Fills the pointer matrices for ref1 then ref2 and returns the best endpoint.

    Returns:
        (score, ref, query_pos, ref_pos) of the first endpoint reaching the maximum score.
    """
    q = query.shape[0]
    n1 = ref1.shape[0]
    n2 = ref2.shape[0]
    delete_extend = gap_extend * 2 if legacy else gap_extend
    this = 0
    prev = 1

    # Column 0: the query may start anywhere at the cost of a leading soft-clip
    cur = scores[this]
    for i in range(q + 1):
        cur[i, _M] = i * mismatch
        cur[i, _D] = _BAD
        cur[i, _I] = _BAD
        cur[i, _J] = _BAD

    # The fully clipped query at ref1 offset 0 is the first endpoint considered
    best = cur[q, _M]
    best_ref = 1
    best_i = q
    best_j = 0

    # --- Phase A: ref1 ---
    for j in range(1, n1 + 1):
        this, prev = prev, this
        cur = scores[this]
        left = scores[prev]
        cur[0, _M] = 0
        cur[0, _D] = _BAD
        cur[0, _I] = _BAD
        cur[0, _J] = _BAD
        sym = ref1[j - 1]

        for i in range(1, q + 1):
            # Match
            v = left[i - 1, _M]
            src = _M
            if left[i - 1, _D] > v:
                v = left[i - 1, _D]
                src = _D
            if left[i - 1, _I] > v:
                v = left[i - 1, _I]
                src = _I
            cur[i, _M] = v + (match if query[i - 1] == sym else mismatch)
            ptr1[i, j, _M] = src

            # Delete
            v = left[i, _M] + gap_open
            src = _M
            if left[i, _D] > v:
                v = left[i, _D]
                src = _D
            if left[i, _I] > v:
                v = left[i, _I]
                src = _I
            cur[i, _D] = v + delete_extend
            ptr1[i, j, _D] = src

            # Insert
            v = cur[i - 1, _M] + gap_open
            src = _M
            if cur[i - 1, _D] > v:
                v = cur[i - 1, _D]
                src = _D
            if cur[i - 1, _I] > v:
                v = cur[i - 1, _I]
                src = _I
            cur[i, _I] = v + gap_extend
            ptr1[i, j, _I] = src

            # Jump: leave ref1 after this column, or carry an earlier jump along
            v = cur[i, _M] + jump_score
            src = _M
            if cur[i, _I] + jump_score > v:
                v = cur[i, _I] + jump_score
                src = _I
            if left[i, _J] > v:
                v = left[i, _J]
                src = _J
            cur[i, _J] = v
            ptr1[i, j, _J] = src

        if cur[q, _M] > best:
            best = cur[q, _M]
            best_ref = 1
            best_i = q
            best_j = j

    # --- Phase B: ref2 ---
    # Column 0 restarts the leading soft-clip charge and keeps the jump scores of the last ref1 column
    for i in range(q + 1):
        cur[i, _M] = i * mismatch
        cur[i, _D] = _BAD
        cur[i, _I] = _BAD
    cur[0, _J] = _BAD

    for j in range(1, n2 + 1):
        this, prev = prev, this
        cur = scores[this]
        left = scores[prev]
        cur[0, _M] = 0
        cur[0, _D] = _BAD
        cur[0, _I] = _BAD
        cur[0, _J] = _BAD
        sym = ref2[j - 1]

        for i in range(1, q + 1):
            # Match, possibly landing from the jump state
            v = left[i - 1, _M]
            src = _M
            if left[i - 1, _D] > v:
                v = left[i - 1, _D]
                src = _D
            if left[i - 1, _I] > v:
                v = left[i - 1, _I]
                src = _I
            if left[i - 1, _J] > v:
                v = left[i - 1, _J]
                src = _J
            cur[i, _M] = v + (match if query[i - 1] == sym else mismatch)
            ptr2[i, j, _M] = src

            # Delete
            v = left[i, _M] + gap_open
            src = _M
            if left[i, _D] > v:
                v = left[i, _D]
                src = _D
            if left[i, _I] > v:
                v = left[i, _I]
                src = _I
            cur[i, _D] = v + gap_extend
            ptr2[i, j, _D] = src

            # Insert, possibly landing from the jump state
            v = cur[i - 1, _M] + gap_open
            src = _M
            if cur[i - 1, _D] > v:
                v = cur[i - 1, _D]
                src = _D
            if cur[i - 1, _I] > v:
                v = cur[i - 1, _I]
                src = _I
            if cur[i - 1, _J] > v:
                v = cur[i - 1, _J]
                src = _J
            cur[i, _I] = v + gap_extend
            ptr2[i, j, _I] = src

            # Jump: pass-through only, a second jump is not allowed
            cur[i, _J] = left[i, _J]
            ptr2[i, j, _J] = _J

        if cur[q, _M] > best:
            best = cur[q, _M]
            best_ref = 2
            best_i = q
            best_j = j

    # Query running off the end of ref2: the unaligned remainder is charged as mismatches
    for i in range(q + 1):
        v = cur[i, _M] + (q - i) * mismatch
        if v > best:
            best = v
            best_ref = 2
            best_i = i
            best_j = n2

    return best, best_ref, best_i, best_j


@jit(nopython=True, cache=True, nogil=True)
def _traceback_kernel(ptr1, ptr2, ref, i, j, state, q, n1):
    """
    Walks the pointer matrices back from an endpoint.

    Returns:
        (ops, counts, query_pos, ref_pos, ref, ref1_end, ref2_start, status) with ops in reverse order.
        ref1_end and ref2_start are -1 when no jump was taken; status is 1 if an unknown state was reached.
    """
    max_ops = q + ptr1.shape[1] + ptr2.shape[1] + 2
    ops = np.empty(max_ops, dtype=np.uint8)
    counts = np.empty(max_ops, dtype=np.int64)
    k = 0
    ref1_end = -1
    ref2_start = -1
    status = 0

    curr_op = _NO_OP
    curr_count = 0
    # Trailing soft-clip when the query runs off the end of the reference
    if i < q:
        curr_op = _OP_S
        curr_count = q - i

    while i > 0 and (j > 0 or state == _J):
        if state == _J:
            if ref == 2:
                # Switch matrices: the jump consumes no bases
                if curr_op != _NO_OP:
                    ops[k] = curr_op
                    counts[k] = curr_count
                    k += 1
                ops[k] = _OP_J
                counts[k] = 1
                k += 1
                curr_op = _NO_OP
                curr_count = 0
                ref2_start = j
                ref = 1
                j = n1
                continue
            nxt = np.int64(ptr1[i, j, _J])
            if nxt == _J:
                j -= 1
            elif nxt == _M or nxt == _I:
                ref1_end = j
                state = nxt
            else:
                status = 1
                break
            continue

        ptr = ptr1 if ref == 1 else ptr2
        nxt = np.int64(ptr[i, j, state])
        if nxt > _J:
            status = 1
            break
        op = _NO_OP
        if state == _M:
            op = _OP_M
            i -= 1
            j -= 1
        elif state == _D:
            op = _OP_D
            j -= 1
        elif state == _I:
            op = _OP_I
            i -= 1
        else:
            status = 1
            break

        if op == curr_op:
            curr_count += 1
        else:
            if curr_op != _NO_OP:
                ops[k] = curr_op
                counts[k] = curr_count
                k += 1
            curr_op = op
            curr_count = 1
        state = nxt

    if curr_op != _NO_OP:
        ops[k] = curr_op
        counts[k] = curr_count
        k += 1

    # Leading soft-clip for query bases left when the walk reaches the start of the reference
    if status == 0 and i > 0:
        if k > 0 and ops[k - 1] == _OP_S:
            counts[k - 1] += i
        else:
            ops[k] = _OP_S
            counts[k] = i
            k += 1

    return ops[:k], counts[:k], i, j, ref, ref1_end, ref2_start, status
