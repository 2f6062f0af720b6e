"""Phrase trainer cluster presentation and naming."""

from typing import Optional

from pydantic import BaseModel

DEFAULT_CLUSTER_COLOR = "#CCCCCC"


class ClusterStyle(BaseModel):
    color: str
    icon: str
    is_large: bool = False


CLUSTER_STYLES: dict[str, ClusterStyle] = {
    "All Clusters": ClusterStyle(color="#94B7F2", icon="👾"),
    "My take": ClusterStyle(color="#FBDDC3", icon="💬"),
    "Politeness and Requests": ClusterStyle(color="#FAF7BF", icon="👌"),
    "Making sense": ClusterStyle(color="#FBC3C8", icon="🙃"),
    "Time and Path": ClusterStyle(color="#84E9F3", icon="⏳"),
    "Home and Daily Life": ClusterStyle(color="#E9B0E4", icon="🏠"),
    "Children and School": ClusterStyle(color="#90F5D9", icon="👶"),
    "Shops and Services": ClusterStyle(color="#B2FDB0", icon="🛒"),
    "Cafes and Restaurants": ClusterStyle(color="#91B7FF", icon="☕"),
    "Emotions and States": ClusterStyle(color="#84D4F2", icon="🤡"),
    "Speech Connectors": ClusterStyle(color="#FA9A9D", icon="💭"),
    "Conflict and Discontent": ClusterStyle(color="#ADA0FF", icon="🤬"),
    "Cult Phrases": ClusterStyle(color="#B474FF", icon="🎬", is_large=True),
}

# Russian cluster names used in the source phrase files -> English names stored in the database
CLUSTER_NAME_MAP: dict[str, str] = {
    "Новичок : Beginner": "Beginner",
    "Реакции и ответы": "My take",
    "Вежливость и просьбы": "Politeness and Requests",
    "Понимание : непонимание": "Making sense",
    "Понимание / непонимание": "Making sense",
    "Движение, время, паузы": "Time and Path",
    "Дом и быт": "Home and Daily Life",
    "Дети и школа": "Children and School",
    "Магазины и сервисы": "Shops and Services",
    "Кафе и рестораны": "Cafes and Restaurants",
    "Эмоции и состояния": "Emotions and States",
    "Связки речи": "Speech Connectors",
    "Плохие слова : матерная речь": "Conflict and Stress",
    "Плохие слова / матерная речь": "Conflict and Stress",
    "Фразы из фильмов": "Cult Phrases",
}


def get_cluster_style(name: str) -> Optional[ClusterStyle]:
    return CLUSTER_STYLES.get(name)


def get_cluster_color(name: str) -> str:
    style = CLUSTER_STYLES.get(name)
    return style.color if style else DEFAULT_CLUSTER_COLOR


def english_cluster_name(source_name: str) -> str:
    return CLUSTER_NAME_MAP.get(source_name, source_name)
