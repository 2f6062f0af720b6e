"""CLI for importing phrase-trainer clusters from JSON files.

Usage:
    faloclaro-import-clusters --dir Clasters

Each file holds ``{"cluster_id": n, "cluster_name": "...", "phrases": [...]}``;
phrases carry ``pt`` plus ``ru``/``en`` translations.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from faloclaro.services.phrases import import_cluster
from faloclaro.utils.logging_config import configure_logging, stage_logger
from faloclaro.utils.supabase_client import get_supabase_admin

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import phrase clusters from JSON files")
    parser.add_argument(
        "--dir",
        type=Path,
        default=Path("Clasters"),
        help="Directory containing cluster JSON files (default: Clasters)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(level=getattr(logging, args.log_level))

    if not args.dir.is_dir():
        logger.error(f"Clusters directory not found: {args.dir}")
        return 1
    files = sorted(args.dir.glob("*.json"))
    if not files:
        logger.error(f"No JSON files in {args.dir}")
        return 1

    db = get_supabase_admin()
    imported = errors = 0
    with stage_logger("import_clusters", directory=str(args.dir), files=len(files)) as log:
        for path in tqdm(files, desc="Clusters", unit="file"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                log.error(f"✗ Cannot read {path.name}: {e}")
                errors += 1
                continue
            result = import_cluster(db, data)
            imported += result["imported"]
            errors += result["errors"]
            log.info(f"{path.name}: {result['imported']} phrases, {result['errors']} errors")

    logger.info(f"Imported {imported} phrases from {len(files)} files ({errors} errors)")
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
