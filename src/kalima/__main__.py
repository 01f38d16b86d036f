"""Main entry point: run one review session in the terminal."""
import argparse
import random
import sys
from typing import List, Optional

from kalima.config import ensure_directories, settings
from kalima.logging_config import get_logger, setup_logging
from kalima.models.base import SessionLocal, init_db
from kalima.models.models import Word
from kalima.models.queue_models import ExerciseType, QueueItem, StepKind
from kalima.services.answer_grading import arabic_match, grade_arabic_answer
from kalima.services.learning_service import LearningService, PersistenceError

logger = get_logger(__name__)

CHOICES = 4
BLANK = "____"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="kalima", description="Arabic vocabulary trainer")
    parser.add_argument("--user", default="local", help="user id to study as")
    parser.add_argument("--words", help="CSV or JSON word list to import first")
    parser.add_argument("--new", type=int, default=None, help="new words for this session")
    parser.add_argument("--reviews", type=int, default=None, help="reviews for this session")
    parser.add_argument("--seed", type=int, default=None, help="seed for a reproducible queue")
    return parser.parse_args(argv)


def _options(word: Word, words: List[Word], attr: str, rng: random.Random) -> List[str]:
    """The right answer plus up to three distractors from other words."""
    right = getattr(word, attr)
    pool = [getattr(other, attr) for other in words if other.id != word.id and getattr(other, attr)]
    pool = list(dict.fromkeys(value for value in pool if value != right))
    options = rng.sample(pool, min(CHOICES - 1, len(pool))) + [right]
    rng.shuffle(options)
    return options


def _ask_choice(prompt: str, options: List[str], answer: str) -> bool:
    print(prompt)
    for number, option in enumerate(options, start=1):
        print(f"  {number}. {option}")
    reply = input("> ").strip()
    if reply.isdigit() and 1 <= int(reply) <= len(options):
        return options[int(reply) - 1] == answer
    return reply == answer


def _cloze_sentence(word: Word) -> Optional[str]:
    for example in word.examples:
        if word.arabic_raw in example.ar:
            return example.ar.replace(word.arabic_raw, BLANK, 1)
    return None


def present(item: QueueItem, words: List[Word], rng: random.Random) -> dict:
    """Show one step and return the keyword arguments for ``answer``."""
    word = item.word

    if item.step is StepKind.INTRO:
        print(f"\nNEW: {word.display_arabic}  {word.transliteration or ''}")
        print(f"     {word.english} / {word.dutch}")
        input("(enter to continue) ")
        return {}

    exercise = item.exercise_type
    if exercise is ExerciseType.RECOGNITION:
        correct = _ask_choice(f"\nWhat does {word.display_arabic} mean?",
                              _options(word, words, "english", rng), word.english)
    elif exercise is ExerciseType.REVERSE_RECOGNITION:
        correct = _ask_choice(f"\nWhich word means '{word.english}'?",
                              _options(word, words, "arabic_raw", rng), word.arabic_raw)
    elif exercise is ExerciseType.LISTENING:
        correct = _ask_choice(f"\nYou hear: {word.transliteration or word.display_arabic}",
                              _options(word, words, "english", rng), word.english)
    else:
        sentence = _cloze_sentence(word) if exercise is ExerciseType.CLOZE else None
        if sentence:
            print(f"\nFill in the blank: {sentence}")
        else:
            print(f"\nType the Arabic for '{word.english}'")
        reply = input("> ").strip()
        grade = grade_arabic_answer(reply, word.arabic_raw)
        if arabic_match(reply, word.arabic_raw):
            print("Correct")
        else:
            print(f"The answer is {word.display_arabic}")
        return {"grade": grade}

    print("Correct" if correct else f"The answer is {word.english} ({word.display_arabic})")
    return {"correct": correct}


def main(argv: Optional[List[str]] = None) -> int:
    """Run one session for a user."""
    args = parse_args(argv)
    ensure_directories()
    setup_logging("Starting kalima ...")
    init_db()

    db = SessionLocal()
    try:
        service = LearningService(db, seed=args.seed)
        if args.words:
            service.words.load_word_list(args.words)
        service.initialize_collection(args.user)

        words = service.words.list_words()
        if not words:
            print(f"No words found. Import a word list with --words or put one at "
                  f"{settings.paths.word_list_file}")
            return 1

        session = service.start_session(args.user, new_cap=args.new, review_cap=args.reviews)
        if session.is_finished:
            print("Nothing to study right now")
            return 0

        rng = random.Random(args.seed)
        while not session.is_finished:
            session.answer(**present(session.current, words, rng))

        summary = session.finish()
        print(f"\nDone: {summary.reviewed} exercises, {summary.new_learned} new words, "
              f"accuracy {summary.accuracy}%")
        return 0
    except (KeyboardInterrupt, EOFError):
        logger.info("Session interrupted")
        return 130
    except PersistenceError as e:
        logger.error(f"Progress could not be saved: {e}")
        return 2
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
