"""Unit tests for lesson content parsing, normalization, transformation and export."""

import json

from faloclaro.lesson.authoring_export import build_authoring_export, export_lesson_row
from faloclaro.lesson.clusters import english_cluster_name, get_cluster_color
from faloclaro.lesson.content import get_tasks, parse_yaml_content
from faloclaro.lesson.normalizer import normalize_tasks
from faloclaro.lesson.transformer import (
    determine_frontend_type,
    is_new_structure,
    prepare_lesson_for_player,
    transform_lesson_for_frontend,
)
from faloclaro.lesson.translations import get_day_title, get_translated_text
from faloclaro.lesson.words import count_lesson_words, extract_task1_cards, extract_words
from faloclaro.models.lesson import FrontendTaskType


class TestParseContent:
    def test_dict_passes_through(self):
        content = {"tasks": []}
        assert parse_yaml_content(content) is content

    def test_json_string(self):
        assert parse_yaml_content(json.dumps({"tasks": [{"task_id": 1}]})) == {
            "tasks": [{"task_id": 1}]
        }

    def test_yaml_string(self):
        assert parse_yaml_content("day:\n  number: 2\ntasks: []\n") == {
            "day": {"number": 2},
            "tasks": [],
        }

    def test_garbage_is_empty(self):
        assert parse_yaml_content("- just\n- a list") == {}
        assert parse_yaml_content(None) == {}
        assert parse_yaml_content(42) == {}

    def test_tasks_under_day(self):
        assert get_tasks({"day": {"tasks": [{"task_id": 1}]}}) == [{"task_id": 1}]
        assert get_tasks({"tasks": "nope"}) == []


class TestNormalizeTasks:
    def test_orders_by_slot_and_infers_ids(self):
        tasks = [
            {"type": "attention"},
            {"type": "vocabulary"},
            {"type": "listening"},
            {"type": "rules"},
        ]

        result = normalize_tasks(tasks)

        assert [t["task_id"] for t in result] == [1, 2, 3, 4]
        assert [t["type"] for t in result] == [
            "vocabulary",
            "rules",
            "listening_comprehension",
            "attention",
        ]

    def test_explicit_id_wins_and_duplicates_drop(self):
        tasks = [
            {"task_id": 2, "type": "rules", "title": "first"},
            {"task_id": 2, "type": "rules", "title": "second"},
        ]

        result = normalize_tasks(tasks)

        assert len(result) == 1
        assert result[0]["title"] == "first"

    def test_input_not_mutated_and_non_dicts_dropped(self):
        tasks = [{"type": "writing"}, "junk", None]

        result = normalize_tasks(tasks)

        assert tasks[0] == {"type": "writing"}
        assert result[0]["type"] == "writing_optional"
        assert result[0]["task_id"] == 5

    def test_writing_template_list_repaired(self):
        tasks = [{"task_id": 5, "type": "writing_optional", "main_task": ["Eu sou ...", "  ", "Eu moro em ..."]}]

        main_task = normalize_tasks(tasks)[0]["main_task"]

        assert main_task["format"] == "template_fill_or_speak"
        assert main_task["template"] == ["Eu sou ...", "Eu moro em ..."]
        assert main_task["template_parts"] == [
            {"type": "text", "text": "Eu sou ...\n"},
            {"type": "text", "text": "Eu moro em ..."},
        ]

    def test_writing_template_objects_flattened(self):
        tasks = [
            {
                "task_id": 5,
                "type": "writing_optional",
                "main_task": {"template": [{"text": "Olá"}, {"content": "Tudo bem?"}, 3]},
            }
        ]

        main_task = normalize_tasks(tasks)[0]["main_task"]

        assert main_task["template"] == ["Olá", "Tudo bem?"]
        assert len(main_task["template_parts"]) == 2

    def test_not_a_list(self):
        assert normalize_tasks({"task_id": 1}) == []


class TestTransformer:
    def _crm_lesson(self):
        return {
            "id": "l1",
            "yaml_content": {
                "tasks": [
                    {
                        "task_id": 1,
                        "task_type": "listen_and_repeat",
                        "blocks": [
                            {
                                "block_id": "b1",
                                "block_type": "listen_and_repeat",
                                "content": {"cards": [{"word": "olá"}]},
                            }
                        ],
                    },
                    {
                        "task_id": 2,
                        "task_type": "speak_correctly",
                        "blocks": [
                            {"block_id": "r1", "block_type": "how_to_say", "content": {"title": {"ru": "Как"}}},
                            {"block_id": "r2", "block_type": "reinforcement", "content": {"task_1": {"q": 1}}},
                        ],
                    },
                    {
                        "task_id": 3,
                        "task_type": "understand_meaning",
                        "blocks": [
                            {"block_type": "listen_phrase", "content": {"items": [{"text": "a"}]}},
                            {"block_type": "listen_phrase", "content": {"items": [{"text": "b"}]}},
                        ],
                    },
                    {
                        "task_id": 4,
                        "task_type": "choose_situation",
                        "blocks": [{"block_type": "check_meaning", "content": {"items": [{"text": "c"}]}}],
                    },
                    {
                        "task_id": 5,
                        "task_type": "try_yourself",
                        "blocks": [
                            {"block_type": "write_by_hand", "content": {"instruction": {"ru": "Пиши"}}}
                        ],
                    },
                ]
            },
        }

    def test_new_structure_detected(self):
        assert is_new_structure(self._crm_lesson())
        assert not is_new_structure({"yaml_content": {"tasks": [{"type": "vocabulary"}]}})

    def test_task_types_mapped(self):
        tasks = transform_lesson_for_frontend(self._crm_lesson())["yaml_content"]["tasks"]

        assert [t["type"] for t in tasks] == [
            "vocabulary",
            "rules",
            "listening_comprehension",
            "attention",
            "writing_optional",
        ]

    def test_block_payloads(self):
        tasks = transform_lesson_for_frontend(self._crm_lesson())["yaml_content"]["tasks"]

        assert tasks[0]["content"] == {"cards": [{"word": "olá"}]}
        assert tasks[1]["structure"] == {"blocks_order": ["r1", "r2"]}
        assert tasks[1]["blocks"]["r2"] == {"type": "reinforcement", "task_1": {"q": 1}, "task_2": None}
        assert tasks[2]["items"] == [{"text": "a"}, {"text": "b"}]
        assert tasks[2]["ui_rules"]["audio_plays_first"] is True
        assert tasks[3]["ui_rules"]["only_known_words"] is True
        assert tasks[4]["instruction"] == {"ru": "Пиши"}
        assert tasks[4]["optional"] is True

    def test_unknown_combination_falls_back_to_vocabulary(self):
        task = {"task_type": "speak_correctly", "blocks": [{"block_type": "listen_phrase"}]}
        assert determine_frontend_type(task) is FrontendTaskType.VOCABULARY

    def test_old_structure_only_parsed(self):
        lesson = {"id": "l2", "yaml_content": json.dumps({"tasks": [{"type": "vocabulary"}]})}

        prepared = prepare_lesson_for_player(lesson)

        assert prepared["yaml_content"] == {"tasks": [{"type": "vocabulary"}]}


class TestAuthoringExport:
    def test_export_whitelists_and_cleans(self):
        tasks = [
            {
                "task_id": 4,
                "type": "attention",
                "editor_state": {"open": True},
                "items": [
                    {
                        "text": "Obrigado",
                        "audio_url": "https://x/1.mp3",
                        "options": [{"text": "a", "is_correct": 1}, {"text": "b", "is_correct": False}],
                    }
                ],
            },
            {
                "task_id": 2,
                "type": "rules",
                "blocks": [
                    {
                        "block_id": "r1",
                        "block_type": "reinforcement",
                        "task_1": {"question": "?"},
                        "content": {"title": "t", "extra": "drop"},
                    }
                ],
            },
        ]

        export = build_authoring_export(7, tasks, title_ru="Кафе", estimated_time="15–25")

        assert [t["task_id"] for t in export["tasks"]] == [2, 4]
        rules, attention = export["tasks"]
        assert rules["blocks"][0]["content"] == {"title": "t", "task_1": {"question": "?"}}
        assert "editor_state" not in attention
        item = attention["items"][0]
        assert "audio_url" not in item
        assert item["options"] == [{"text": "a", "correct": True}, {"text": "b", "correct": False}]
        assert export["day"]["title"] == {"ru": "Кафе", "en": "", "pt": ""}
        assert export["estimated_time"] == "15–25"
        # Source is untouched
        assert "audio_url" in tasks[0]["items"][0]

    def test_export_row_uses_content_estimated_time(self):
        export = export_lesson_row(
            {"day_number": 3, "title_en": "Shop"}, {"estimated_time": "10", "tasks": []}
        )
        assert export["day_number"] == 3
        assert export["title_en"] == "Shop"
        assert export["estimated_time"] == "10"


class TestWords:
    def test_extract_words_from_cards_and_blocks(self):
        content = {
            "tasks": [
                {
                    "task_id": 1,
                    "type": "vocabulary",
                    "content": {"cards": [{"word": " café "}, {"word": ""}, "x"]},
                    "blocks": {"b": {"content": {"cards": [{"word": "pão"}]}}},
                },
                {"task_id": 2, "type": "vocabulary", "content": {"cards": [{"word": "ignored"}]}},
            ]
        }
        assert extract_words(content) == ["café", "pão"]

    def test_task1_card_shapes(self):
        assert extract_task1_cards({"cards": [1, 2]}) == [1, 2]
        assert extract_task1_cards({"blocks": [{"cards": [1]}, {"content": {"cards": [2]}}]}) == [1, 2]
        assert extract_task1_cards({"main_words": ["a"], "additional_words": ["b"]}) == ["a", "b"]
        assert extract_task1_cards(None) == []

    def test_count_lesson_words(self):
        content = {"tasks": [{"task_id": 1, "content": {"cards": [{}, {}, {}]}}]}
        assert count_lesson_words(content) == 3


class TestTranslationsAndClusters:
    def test_fallback_order(self):
        assert get_translated_text({"en": "Hi", "pt": "Olá"}, "ru") == "Hi"
        assert get_translated_text({"pt": "Olá"}, "en") == "Olá"
        assert get_translated_text("plain", "en") == "plain"
        assert get_translated_text(None, "en") == ""

    def test_day_title(self):
        assert get_day_title({"title": {"ru": "Кафе", "en": "Café"}}, "en") == "Café"

    def test_cluster_color_default(self):
        assert get_cluster_color("No such cluster") == "#CCCCCC"

    def test_unknown_cluster_name_kept(self):
        assert english_cluster_name("Something new") == "Something new"
