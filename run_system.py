#!/usr/bin/env python3
"""
Quran Hifz Recitation Tracker Launcher

This script provides an easy way to launch different components of the system.
"""

import sys
import argparse
import subprocess
import logging
from pathlib import Path

# Make the package importable without installing it
sys.path.insert(0, str(Path(__file__).parent / "src"))

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Surah Al-Ikhlas, one string per ayah
DEMO_PASSAGE = [
    "قُلْ هُوَ ٱللَّهُ أَحَدٌ",
    "ٱللَّهُ ٱلصَّمَدُ",
    "لَمْ يَلِدْ وَلَمْ يُولَدْ",
    "وَلَمْ يَكُن لَّهُۥ كُفُوًا أَحَدٌۢ",
]

# What a recognizer might hear: one mistaken word, the third ayah forgotten
DEMO_TRANSCRIPT = "قل هو الله احد الله السمد ولم يكن له كفوا احد"


def run_fastapi_server():
    """Launch the FastAPI backend server."""
    logger.info("Starting FastAPI backend server...")
    try:
        subprocess.run([sys.executable, "-m", "quran_hafiz.fastapi_server"], check=True,
                       cwd=Path(__file__).parent / "src")
    except subprocess.CalledProcessError as e:
        logger.error(f"Failed to start FastAPI server: {e}")
        return False
    except KeyboardInterrupt:
        logger.info("FastAPI server stopped by user")
    return True


def run_tests():
    """Run the test suite."""
    logger.info("Running tests...")
    try:
        subprocess.run([sys.executable, "-m", "unittest", "discover", "-p", "test_*.py"], check=True,
                       cwd=Path(__file__).parent)
        logger.info("All tests passed!")
        return True
    except subprocess.CalledProcessError as e:
        logger.error(f"Tests failed: {e}")
        return False


def demo_recitation():
    """Feed a scripted transcript word by word and print the live statuses."""
    from quran_hafiz.session_controller import RecitationSession

    logger.info("Running demo recitation of Surah Al-Ikhlas...")
    session = RecitationSession(DEMO_PASSAGE)
    session.start()

    heard = []
    for word in DEMO_TRANSCRIPT.split():
        heard.append(word)
        session.on_transcript(" ".join(heard))
        line = " ".join(
            f"{view.surface}[{view.status.value[0].upper()}]" for view in session.snapshot()
        )
        print(f"heard {word!r:>10} -> {line}")

    session.stop()
    summary = session.summary()

    print("\n" + "=" * 50)
    print("RECITATION SUMMARY")
    print("=" * 50)
    print(f"Words: {summary.total_words}")
    print(f"Correct: {summary.correct_words}, Skipped: {summary.skipped_words}, Pending: {summary.pending_words}")
    print(f"Match: {summary.match_percentage:.1f}%")
    print(f"Result: {summary.message_category}")

    result = session.validate(ayah_number=1)
    if result is not None:
        mistakes = [w for w in result.word_results if not w.is_correct]
        print(f"Word-by-word check: {result.match_percentage:.1f}% ({'passed' if result.is_valid else 'needs review'})")
        for w in mistakes[:5]:
            print(f"  position {w.position}: heard {w.word or '-'!r}, expected {w.expected or '-'!r}")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Quran Hifz Recitation Tracker Launcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_system.py fastapi         # Launch API server
  python run_system.py test            # Run tests
  python run_system.py demo            # Run demo recitation
        """
    )

    parser.add_argument(
        "component",
        choices=["fastapi", "test", "demo"],
        help="Component to launch"
    )

    args = parser.parse_args()

    # Check if we're in the right directory
    if not (Path(__file__).parent / "src" / "quran_hafiz").exists():
        logger.error("Please run this script from the project root directory")
        sys.exit(1)

    success = False

    if args.component == "fastapi":
        success = run_fastapi_server()
    elif args.component == "test":
        success = run_tests()
    elif args.component == "demo":
        success = demo_recitation()

    if not success:
        sys.exit(1)

    logger.info("Operation completed successfully!")


if __name__ == "__main__":
    main()
