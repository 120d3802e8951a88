"""
Split/jump sequence alignment: align one query against two reference segments with at most one jump from the
first to the second, as used to find reads and contigs spanning structural-variant breakpoints.
"""


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class JumpAlignWarning(Warning): pass


from jumpalign.core.alphabet import Alphabet, AlphabetError
from jumpalign.containers.alignment import (AlignmentResult, Breakpoint, Path, PathOp, PathSegment, RefSegment,
                                            matchify_edge_segments, matchify_edge_soft_clip_ref_range)
from jumpalign.engines.jump import (AlignState, AlignmentInputError, AlignmentStateError, JumpAligner,
                                    JumpMatrices, ScoreParams, ScoreParamsError, encode_symbols, jump_align)

__all__ = [
    'JumpAlignWarning', 'Alphabet', 'AlphabetError', 'AlignmentResult', 'Breakpoint', 'Path', 'PathOp',
    'PathSegment', 'RefSegment', 'matchify_edge_segments', 'matchify_edge_soft_clip_ref_range', 'AlignState',
    'AlignmentInputError', 'AlignmentStateError', 'JumpAligner', 'JumpMatrices', 'ScoreParams',
    'ScoreParamsError', 'encode_symbols', 'jump_align',
]
