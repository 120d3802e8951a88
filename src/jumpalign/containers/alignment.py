"""
Module for the alignment path model and the result of a jump alignment.
"""
from typing import Iterable, NamedTuple, Optional, Union, Generator
from enum import IntEnum

import numpy as np


# Classes --------------------------------------------------------------------------------------------------------------
class PathOp(IntEnum):
    """Operations of an alignment path. JUMP consumes nothing and switches from ref1 to ref2."""
    MATCH = 0
    INSERT = 1
    DELETE = 2
    SOFT_CLIP = 3
    JUMP = 4


class RefSegment(IntEnum):
    """The reference segment a coordinate is measured against."""
    REF1 = 1
    REF2 = 2


class PathSegment(NamedTuple):
    op: PathOp
    length: int

    def __str__(self): return f"{self.length}{Path.OP_SYMBOLS[self.op].decode()}"


class Breakpoint(NamedTuple):
    """
    Location of the jump on both reference segments.

    Attributes:
        ref1_end: Offset in ref1 just after the last ref1 base aligned before the jump.
        ref2_start: Offset in ref2 of the first ref2 base aligned after the jump.
    """
    ref1_end: int
    ref2_start: int


class Path:
    """
    Run-length encoded alignment path in left-to-right order.

    Adjacent segments with the same operation are always merged, so two paths describing the same
    alignment compare equal.

    Examples:
        >>> Path.from_cigar('4M1J4M').query_length
        8
    """
    OP_SYMBOLS = (b'M', b'I', b'D', b'S', b'J')
    _SYMBOL_TO_OP = {ord(s): PathOp(i) for i, s in enumerate(OP_SYMBOLS)}

    # Consumption logic
    _QUERY_CONSUMERS = np.array([True, True, False, True, False], dtype=bool)
    _REF_CONSUMERS = np.array([True, False, True, False, False], dtype=bool)
    __slots__ = ('_segments',)

    def __init__(self, segments: Iterable[Union[PathSegment, tuple[int, int]]] = ()):
        merged = []
        for op, length in segments:
            op = PathOp(op)
            if length < 1: raise ValueError(f'Path segment length must be positive, got {length}{op.name}')
            if merged and merged[-1].op == op:
                merged[-1] = PathSegment(op, merged[-1].length + int(length))
            else:
                merged.append(PathSegment(op, int(length)))
        if sum(s.length for s in merged if s.op == PathOp.JUMP) > 1:
            raise ValueError('A path may contain at most one jump')
        self._segments = tuple(merged)

    @classmethod
    def from_arrays(cls, ops: np.ndarray, counts: np.ndarray) -> 'Path':
        """Builds a path from parallel arrays of op codes and run lengths."""
        return cls(zip(ops.tolist(), counts.tolist()))

    @classmethod
    def from_cigar(cls, cigar: Union[bytes, str]) -> 'Path':
        """Parses a CIGAR-like string using the M, I, D, S and J operations."""
        if isinstance(cigar, str): cigar = cigar.encode('ascii')
        segments, count, has_count = [], 0, False
        for b in cigar:
            if 48 <= b <= 57:
                count = count * 10 + (b - 48)
                has_count = True
            else:
                if b not in cls._SYMBOL_TO_OP: raise ValueError(f'Unknown path operation {chr(b)!r} in {cigar!r}')
                if not has_count: raise ValueError(f'Missing length before {chr(b)!r} in {cigar!r}')
                segments.append((cls._SYMBOL_TO_OP[b], count))
                count, has_count = 0, False
        if has_count: raise ValueError(f'Trailing length without operation in {cigar!r}')
        return cls(segments)

    def to_cigar(self) -> bytes:
        return b"".join([b"%d" % s.length + self.OP_SYMBOLS[s.op] for s in self._segments])

    def __len__(self): return len(self._segments)
    def __iter__(self): return iter(self._segments)
    def __getitem__(self, item): return self._segments[item]
    def __reversed__(self): return reversed(self._segments)
    def __str__(self): return self.to_cigar().decode('ascii')
    def __repr__(self): return f"Path({self})"
    def __hash__(self): return hash(self._segments)

    def __eq__(self, other):
        if isinstance(other, Path): return self._segments == other._segments
        return NotImplemented

    @property
    def query_length(self) -> int:
        """Number of query bases covered (MATCH, INSERT and SOFT_CLIP)."""
        return sum(s.length for s in self._segments if self._QUERY_CONSUMERS[s.op])

    @property
    def ref_lengths(self) -> tuple[int, int]:
        """Reference bases consumed before and after the jump."""
        before, after, jumped = 0, 0, False
        for op, length in self._segments:
            if op == PathOp.JUMP: jumped = True
            elif self._REF_CONSUMERS[op]:
                if jumped: after += length
                else: before += length
        return before, after

    @property
    def has_jump(self) -> bool: return any(s.op == PathOp.JUMP for s in self._segments)

    def count(self, op: PathOp) -> int:
        """Total length of all segments with the given operation."""
        return sum(s.length for s in self._segments if s.op == op)

    def walk(self) -> Generator[tuple[PathOp, int, int, bool], None, None]:
        """
        Yields one step per aligned column: (op, query_offset, ref_offset, after_jump).

        Offsets are relative to the start of the path; the JUMP step is yielded once and resets the
        reference offset.
        """
        q, r, jumped = 0, 0, False
        for op, length in self._segments:
            if op == PathOp.JUMP:
                jumped, r = True, 0
                yield op, q, r, jumped
                continue
            for _ in range(length):
                yield op, q, r, jumped
                if self._QUERY_CONSUMERS[op]: q += 1
                if self._REF_CONSUMERS[op]: r += 1


class AlignmentResult:
    """
    Result of a jump alignment.

    Attributes:
        score (int): Alignment score.
        path (Path): The alignment path, left to right.
        align_start (int): Offset into `start_ref` of the leftmost consumed or deleted reference base.
        start_ref (RefSegment): Reference segment the alignment starts on.
        breakpoint (Breakpoint): Where the jump happened, or None for alignments without a jump.
    """
    __slots__ = ('score', 'path', 'align_start', 'start_ref', 'breakpoint')

    def __init__(self, score: int, path: Path, align_start: int, start_ref: RefSegment = RefSegment.REF1,
                 breakpoint: Optional[Breakpoint] = None):
        self.score = int(score)
        self.path = path
        self.align_start = int(align_start)
        self.start_ref = RefSegment(start_ref)
        self.breakpoint = breakpoint

    def __repr__(self):
        return (f"AlignmentResult(score={self.score}, start={self.start_ref.name}:{self.align_start}, "
                f"path={self.path}, breakpoint={self.breakpoint})")

    def __str__(self): return f"{self.score}\t{self.start_ref.name}:{self.align_start}\t{self.path}"

    def __eq__(self, other):
        if isinstance(other, AlignmentResult):
            return (self.score == other.score and
                    self.path == other.path and
                    self.align_start == other.align_start and
                    self.start_ref == other.start_ref and
                    self.breakpoint == other.breakpoint)
        return NotImplemented

    def __hash__(self): return hash((self.score, self.path, self.align_start, self.start_ref, self.breakpoint))

    @property
    def is_jump(self) -> bool: return self.breakpoint is not None

    @property
    def end_ref(self) -> RefSegment: return RefSegment.REF2 if self.is_jump else self.start_ref

    @property
    def align_end(self) -> int:
        """Offset into `end_ref` just past the last consumed reference base."""
        before, after = self.path.ref_lengths
        if self.is_jump: return self.breakpoint.ref2_start + after
        return self.align_start + before


# Functions ------------------------------------------------------------------------------------------------------------
def _match_edge_segments(path: Path) -> Optional[tuple[int, int]]:
    """Indices of the first and last MATCH segments, or None when there is no MATCH."""
    idx = [i for i, s in enumerate(path) if s.op == PathOp.MATCH]
    return (idx[0], idx[-1]) if idx else None


def matchify_edge_segments(result: AlignmentResult, op: PathOp = PathOp.SOFT_CLIP, leading: bool = True,
                           trailing: bool = True) -> AlignmentResult:
    """
    Converts segments of a query-consuming type that lie outside all MATCH segments into MATCH.

    Leading segments that become MATCH move `align_start` back by their length, which can make it
    negative when the extension runs past the start of the reference segment.

    Args:
        result: The alignment to convert.
        op: SOFT_CLIP or INSERT.
        leading: Convert segments before the first MATCH.
        trailing: Convert segments after the last MATCH.

    Returns:
        A new AlignmentResult with the same score and breakpoint.

    Raises:
        ValueError: If `op` does not consume query bases only.
    """
    op = PathOp(op)
    if op not in (PathOp.SOFT_CLIP, PathOp.INSERT): raise ValueError(f'Cannot matchify {op.name} segments')
    if (ends := _match_edge_segments(result.path)) is None: return result

    start = result.align_start
    segments = []
    for i, segment in enumerate(result.path):
        is_leading, is_trailing = i < ends[0], i > ends[1]
        is_target = segment.op == op and ((leading and is_leading) or (trailing and is_trailing))
        if is_target and is_leading: start -= segment.length
        segments.append(PathSegment(PathOp.MATCH, segment.length) if is_target else segment)

    return AlignmentResult(result.score, Path(segments), start, result.start_ref, result.breakpoint)


def matchify_edge_soft_clip_ref_range(result: AlignmentResult) -> tuple[int, int]:
    """
    Reference range covered by `result` if its edge soft-clips were aligned as matches.

    Raises:
        ValueError: For jump alignments, whose span is not a single range.
    """
    if result.is_jump: raise ValueError('Jump alignments do not cover a single reference range')
    begin = end = result.align_start
    if (ends := _match_edge_segments(result.path)) is None:
        return begin, end + result.path.count(PathOp.SOFT_CLIP)

    for i, (op, length) in enumerate(result.path):
        if i < ends[0] or i > ends[1]:
            if Path._QUERY_CONSUMERS[op]:
                if i < ends[0]: begin -= length
                else: end += length
        elif Path._REF_CONSUMERS[op]:
            end += length
    return begin, end
