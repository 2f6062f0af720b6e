"""Prompts for drafting a lesson with an LLM."""

import json
from typing import Any, Optional

EXAMPLE_LESSON_MAX_CHARS = 5000

PHASE_DESCRIPTIONS = {
    "A1": "Beginner level. Simple phrases, basic vocabulary, present tense, essential daily situations.",
    "A2": "Elementary level. Past and future tenses, more complex sentences, expanded vocabulary, common scenarios.",
    "B1": "Intermediate level. Subjunctive mood, conditional, complex sentences, abstract topics, nuanced expressions.",
    "B2": "Upper-intermediate level. Advanced grammar, idiomatic expressions, professional contexts, sophisticated communication.",
}

TASK_STRUCTURE = """Each lesson must have exactly 5 tasks, in this order:

1. **TASK 1 - Vocabulary (type: "vocabulary")**
   - Cards with: word (PT), word_translation_ru, word_translation_en, transcription (optional),
     example_sentence (PT), sentence_translation_ru, sentence_translation_en
   - Structure: { task_id: 1, type: "vocabulary", content: { cards: [...] }, ui: {...}, completion_rule: "..." }

2. **TASK 2 - Rules (type: "rules")**
   - Blocks: explanation, comparison, reinforcement, speak_out_loud
   - Each block can have examples, hints, tasks
   - Structure: { task_id: 2, type: "rules", blocks: [...] }

3. **TASK 3 - Listening (type: "listening")**
   - Items with: audio_text (PT), question (RU/EN), options (PT), correct answer
   - Structure: { task_id: 3, type: "listening", items: [...] }

4. **TASK 4 - Attention (type: "attention")**
   - Like listening, but checks attention to form and meaning
   - Structure: { task_id: 4, type: "attention", items: [...] }

5. **TASK 5 - Writing (type: "writing")**
   - Template forms and practice
   - Structure: { task_id: 5, type: "writing", main_task: { format: "...", template: [...] } }"""


def get_phase(day_number: int) -> str:
    """CEFR phase of a course day."""
    if day_number <= 10:
        return "A1"
    if day_number <= 30:
        return "A2"
    if day_number <= 50:
        return "B1"
    return "B2"


def _example_json(example_lesson: Optional[Any]) -> str:
    if not example_lesson:
        return "No example available"
    text = json.dumps(example_lesson, ensure_ascii=False, indent=2)
    if len(text) > EXAMPLE_LESSON_MAX_CHARS:
        return text[:EXAMPLE_LESSON_MAX_CHARS] + "..."
    return text


def build_system_prompt(
    course_methodology: str,
    lesson_methodology: str,
    used_words: list[str],
    day_number: int,
    phase: str,
    topic_ru: str,
    topic_en: str,
    example_lesson: Optional[Any] = None,
) -> str:
    """System prompt combining the methodologies with the platform's lesson format.

    The example lesson is truncated so the prompt stays within budget.
    """
    used_words_list = ", ".join(used_words) if used_words else "None yet"
    phase_description = PHASE_DESCRIPTIONS.get(phase, PHASE_DESCRIPTIONS["A1"])

    return f"""You are an AI lesson generator for FaloClaro, a European Portuguese course.

## COURSE METHODOLOGY
{course_methodology}

## LESSON METHODOLOGY
{lesson_methodology}

## ALREADY USED WORDS (DO NOT USE THESE)
{used_words_list}

## LESSON PARAMETERS
- Day: {day_number}
- Phase: {phase} ({phase_description})
- Topic (RU): {topic_ru}
- Topic (EN): {topic_en}

## PLATFORM STRUCTURE

{TASK_STRUCTURE}

## EXAMPLE LESSON (Day 4)
{_example_json(example_lesson)}

## YOUR TASK

Generate a complete lesson JSON matching the structure above:
- Use ONLY words NOT in the used words list
- Match the phase level ({phase})
- Vary the number of blocks, examples and items
- Return ONLY a valid JSON object, no markdown, no explanations"""


def build_user_prompt(day_number: int, phase: str, topic_ru: str, topic_en: str) -> str:
    return (
        f'Generate a complete lesson JSON for day {day_number}, phase {phase}, '
        f'topic "{topic_ru}" / "{topic_en}". Return ONLY a valid JSON object with '
        f"exactly 5 tasks."
    )
