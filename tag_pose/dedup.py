import logging
from typing import Optional, Sequence

from .ip_types import Detection

LOGGER = logging.getLogger(__name__)


def remove_duplicates(
    detections: Sequence[Detection],
    logger: Optional[logging.Logger] = None,
) -> tuple[list[Detection], list[int]]:
    """
    Drop every detection whose id appears more than once in the frame.

    Any tag id may appear at most once in the scene, so when an id shows up
    twice none of its detections can be trusted and the whole run is removed,
    not reduced to one.

    Returns:
        (kept detections sorted by ascending id, pruned ids in ascending order)
    """
    log = logger or LOGGER
    ordered = sorted(detections, key=lambda d: d.tag_id)

    kept: list[Detection] = []
    pruned: list[int] = []
    in_run = False
    for i, det in enumerate(ordered):
        # None past the end closes a duplicate run at the tail
        next_id = ordered[i + 1].tag_id if i + 1 < len(ordered) else None
        if det.tag_id == next_id:
            in_run = True
            continue
        if in_run:
            log.warning(
                "Pruning tag ID %d because it appears more than once in the image.",
                det.tag_id,
            )
            pruned.append(det.tag_id)
            in_run = False
            continue
        kept.append(det)

    return kept, pruned
