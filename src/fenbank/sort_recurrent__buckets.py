"""Sort the 10+ occurrence bucket by descending occurrence."""

from __future__ import annotations

from pathlib import Path

from fenbank.line_codecs import AGGREGATE_HEADER, decode_aggregate_line
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)


def _occurrence(line: str) -> int:
    record = decode_aggregate_line(line)
    return record.occurrence if record is not None else 0


def sort_recurrent_bucket(bucket_file: Path, output_file: Path) -> int:
    """Write ``output_file`` as the header plus the bucket sorted by occurrence desc.

    The bucket is loaded fully into memory. Ties keep the FEN order produced
    by the final merge. A missing bucket yields a header-only output. Returns
    the number of data rows written.
    """

    bucket_file = Path(bucket_file)
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    if not bucket_file.exists():
        logger.warning("No 10+ occurrence bucket at %s; writing header only", bucket_file)
        output_file.write_text(AGGREGATE_HEADER, encoding="utf-8")
        return 0
    with bucket_file.open("r", encoding="utf-8", newline="") as handle:
        lines = [line.rstrip("\r\n") for line in handle if line.strip()]
    lines.sort(key=_occurrence, reverse=True)
    with output_file.open("w", encoding="utf-8", newline="\n") as handle:
        handle.write(AGGREGATE_HEADER)
        handle.writelines(f"{line}\n" for line in lines)
    logger.info("Sorted %s recurrent positions into %s", f"{len(lines):,}", output_file.name)
    return len(lines)
