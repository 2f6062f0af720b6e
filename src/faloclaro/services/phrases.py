"""Phrase trainer: clusters, phrases, translations and their import."""

import logging
from typing import Optional

from faloclaro.lesson.clusters import english_cluster_name, get_cluster_color, get_cluster_style
from faloclaro.services.errors import ServiceError
from faloclaro.utils.supabase_client import Client, fetch_all, fetch_one

logger = logging.getLogger(__name__)

TRANSLATION_LANGUAGES = ("ru", "en")


def find_phrase_audio(db: Client, text: Optional[str]) -> dict:
    """Look up recorded audio for a Portuguese phrase.

    Raises:
        ServiceError: If ``text`` is empty
    """
    if not text or not text.strip():
        raise ServiceError("Text parameter is required")
    phrase = fetch_one(
        db.table("phrases")
        .select("id, portuguese_text, audio_url")
        .eq("portuguese_text", text.strip())
        .order("created_at", desc=True)
    )
    if phrase and phrase.get("audio_url"):
        return {"success": True, "exists": True, "phrase": phrase, "audioUrl": phrase["audio_url"]}
    return {"success": True, "exists": False, "phrase": None, "audioUrl": None}


def list_clusters(db: Client) -> list[dict]:
    """Clusters in display order with their colour, icon and size."""
    clusters = fetch_all(db.table("clusters").select("*").order("order_index"))
    result = []
    for cluster in clusters:
        style = get_cluster_style(cluster.get("name") or "")
        result.append(
            {
                **cluster,
                "color": get_cluster_color(cluster.get("name") or ""),
                "icon": style.icon if style else None,
                "is_large": style.is_large if style else False,
            }
        )
    return result


def list_phrases(db: Client, cluster_id: Optional[str] = None, language: str = "ru") -> list[dict]:
    """Phrases with the translation in ``language`` attached, one cluster or all."""
    query = db.table("phrases").select("*")
    if cluster_id:
        query = query.eq("cluster_id", cluster_id)
    phrases = fetch_all(query.order("order_index"))
    if not phrases:
        return []

    translations = fetch_all(
        db.table("translations")
        .select("phrase_id, language_code, translation_text")
        .in_("phrase_id", [p["id"] for p in phrases])
    )
    by_phrase: dict = {}
    for row in translations:
        by_phrase.setdefault(row["phrase_id"], {})[row["language_code"]] = row["translation_text"]

    for phrase in phrases:
        texts = by_phrase.get(phrase["id"], {})
        phrase["translations"] = texts
        phrase["translation"] = texts.get(language) or texts.get("en") or texts.get("ru")
    return phrases


def get_or_create_cluster(db: Client, source_name: str, order_index: Optional[int]) -> str:
    """Cluster id for a Russian source name, creating the English-named cluster if needed."""
    name = english_cluster_name(source_name)
    existing = fetch_one(db.table("clusters").select("id").eq("name", name))
    if existing:
        return existing["id"]
    response = (
        db.table("clusters")
        .insert({"name": name, "description": source_name, "order_index": order_index})
        .execute()
    )
    logger.info(f"✓ Created cluster {name!r}")
    return response.data[0]["id"]


def _english_text(phrase: dict) -> Optional[str]:
    if phrase.get("en"):
        return phrase["en"]
    for translation in phrase.get("translations") or []:
        if isinstance(translation, dict) and translation.get("language_code") == "en":
            return translation.get("text") or translation.get("translation_text")
    return None


def import_phrase(db: Client, cluster_id: str, phrase: dict, order_index: int) -> str:
    """Insert or update one phrase and upsert its translations; returns the phrase id."""
    movie = phrase.get("movie") or {}
    fields = {
        "order_index": order_index,
        "ipa_transcription": phrase.get("ipa") or phrase.get("ipa_transcription"),
        "movie_title": movie.get("title_pt"),
        "movie_character": movie.get("character"),
        "movie_year": movie.get("year"),
    }
    existing = fetch_one(
        db.table("phrases")
        .select("id")
        .eq("cluster_id", cluster_id)
        .eq("portuguese_text", phrase["pt"])
    )
    if existing:
        db.table("phrases").update(fields).eq("id", existing["id"]).execute()
        phrase_id = existing["id"]
    else:
        response = (
            db.table("phrases")
            .insert({"cluster_id": cluster_id, "portuguese_text": phrase["pt"], "audio_url": None, **fields})
            .execute()
        )
        phrase_id = response.data[0]["id"]

    texts = {"ru": phrase.get("ru"), "en": _english_text(phrase)}
    for language in TRANSLATION_LANGUAGES:
        if not texts[language]:
            continue
        try:
            db.table("translations").upsert(
                {"phrase_id": phrase_id, "language_code": language, "translation_text": texts[language]},
                on_conflict="phrase_id,language_code",
            ).execute()
        except Exception as e:
            logger.warning(f"Translation ({language}) for {phrase['pt']!r} failed: {e}")
    return phrase_id


def import_cluster(db: Client, data: dict) -> dict:
    """Import one cluster file: ``{cluster_id, cluster_name, phrases: [{pt, ru, en, ...}]}``.

    Returns:
        ``{"imported": n, "errors": n}``
    """
    phrases = data.get("phrases") or []
    if not phrases:
        return {"imported": 0, "errors": 0}

    cluster_id = get_or_create_cluster(db, data.get("cluster_name") or "", data.get("cluster_id"))
    imported = errors = 0
    for index, phrase in enumerate(phrases, start=1):
        try:
            import_phrase(db, cluster_id, phrase, index)
            imported += 1
        except Exception as e:
            logger.error(f"✗ Error importing phrase {phrase.get('pt')!r}: {e}")
            errors += 1
    return {"imported": imported, "errors": errors}
