from assistant_core.content.segments import Segment, has_code_blocks, split_segments

__all__ = ["Segment", "has_code_blocks", "split_segments"]
