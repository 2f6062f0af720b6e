"""CLI for generating Google TTS audio for trainer phrases that have none.

Usage:
    faloclaro-generate-audio --limit 20
"""

import argparse
import logging
import sys

from tqdm import tqdm

from faloclaro.services.audio import generate_phrase_audio, phrases_without_audio
from faloclaro.utils.logging_config import configure_logging, stage_logger
from faloclaro.utils.supabase_client import get_supabase_admin
from faloclaro.utils.tts_client import GoogleTTSClient, TTSConfigurationError

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate audio for phrases without audio_url")
    parser.add_argument("--limit", type=int, help="Process at most N phrases (default: all)")
    parser.add_argument(
        "--pause",
        type=float,
        default=0.2,
        help="Seconds to wait between TTS requests (default: 0.2)",
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

    try:
        tts = GoogleTTSClient()
    except TTSConfigurationError as e:
        logger.error(str(e))
        return 1

    db = get_supabase_admin()
    phrases = phrases_without_audio(db)
    if args.limit:
        phrases = phrases[: args.limit]
    if not phrases:
        logger.info("All phrases already have audio")
        return 0

    generated = failed = 0
    with stage_logger("generate_audio", phrases=len(phrases)):
        for phrase in tqdm(phrases, desc="Synthesizing", unit="phrase"):
            if generate_phrase_audio(db, tts, phrase, pause_seconds=args.pause):
                generated += 1
            else:
                failed += 1

    stats = tts.get_statistics()
    logger.info("=" * 80)
    logger.info(f"Generated: {generated}  Failed: {failed}")
    logger.info(f"Characters synthesized: {stats.get('total_characters', 0):,}")
    logger.info("=" * 80)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
