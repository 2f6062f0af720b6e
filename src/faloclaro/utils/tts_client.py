"""Google Cloud Text-to-Speech client with retry logic and usage tracking."""

import json
import logging
import os
import time
from typing import Any

from google.cloud import texttospeech
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

REQUIRED_CREDENTIAL_FIELDS = ("type", "project_id", "private_key", "client_email")


class TTSConfigurationError(ValueError):
    """Credentials are missing or malformed."""


def parse_credentials_json(raw: str) -> dict[str, Any]:
    """Parse service-account JSON from an env var.

    Hosting dashboards often store the JSON double-encoded (a JSON string
    containing JSON) and escape the newlines of the private key; both are
    undone here.

    Raises:
        TTSConfigurationError: If the value is not JSON or lacks required fields
    """
    text = raw.strip()
    try:
        credentials = json.loads(text)
        if isinstance(credentials, str):
            credentials = json.loads(credentials)
    except json.JSONDecodeError as e:
        raise TTSConfigurationError(
            f"Failed to parse GOOGLE_APPLICATION_CREDENTIALS_JSON: {e}. "
            "Copy the entire JSON object from the credentials file."
        ) from e

    if not isinstance(credentials, dict):
        raise TTSConfigurationError("GOOGLE_APPLICATION_CREDENTIALS_JSON is not a JSON object")

    missing = [field for field in REQUIRED_CREDENTIAL_FIELDS if not credentials.get(field)]
    if missing:
        raise TTSConfigurationError(
            f"Invalid credentials structure. Missing required fields: {', '.join(missing)}"
        )

    private_key = credentials["private_key"]
    if isinstance(private_key, str):
        private_key = private_key.replace("\\\\n", "\n").replace("\\n", "\n")
        if "BEGIN PRIVATE KEY" not in private_key:
            logger.warning("Private key format might be incorrect (missing BEGIN PRIVATE KEY)")
    return {**credentials, "private_key": private_key}


class GoogleTTSClient:
    """European Portuguese speech synthesis."""

    VOICE = {"language_code": "pt-PT", "name": "pt-PT-Wavenet-B"}

    def __init__(
        self,
        credentials_json: str | None = None,
        credentials_path: str | None = None,
        speaking_rate: float = 1.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """Initialize the TTS client.

        Args:
            credentials_json: Service account JSON (or GOOGLE_APPLICATION_CREDENTIALS_JSON env var)
            credentials_path: Service account file (or GOOGLE_APPLICATION_CREDENTIALS env var)
            speaking_rate: Speech speed, 1.0 is normal
            max_retries: Maximum number of attempts per synthesis
            retry_delay: Initial delay between retries in seconds (exponential backoff)
        """
        credentials_json = credentials_json or os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
        credentials_path = credentials_path or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")

        if credentials_json:
            info = parse_credentials_json(credentials_json)
            credentials = service_account.Credentials.from_service_account_info(info)
            self.client = texttospeech.TextToSpeechClient(credentials=credentials)
            self.credentials_source = "json"
        elif credentials_path:
            self.client = texttospeech.TextToSpeechClient.from_service_account_file(credentials_path)
            self.credentials_source = "file"
        else:
            raise TTSConfigurationError(
                "GOOGLE_APPLICATION_CREDENTIALS or GOOGLE_APPLICATION_CREDENTIALS_JSON "
                "environment variable must be set"
            )

        self.voice = texttospeech.VoiceSelectionParams(
            language_code=self.VOICE["language_code"],
            name=self.VOICE["name"],
            ssml_gender=texttospeech.SsmlVoiceGender.FEMALE,
        )
        self.audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.MP3,
            speaking_rate=speaking_rate,
        )
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        # Usage tracking
        self.total_characters = 0
        self.total_requests = 0
        self.failed_requests = 0

        logger.info(f"Google TTS client initialized ({self.credentials_source} credentials)")

    def synthesize(self, text: str) -> tuple[bool, dict]:
        """Synthesize ``text`` to MP3.

        Returns:
            Tuple of (success, metadata_dict)
            metadata includes: audio_content (bytes, on success), character_count,
            latency_ms, attempts, error and error_code (on failure)
        """
        metadata: dict[str, Any] = {
            "character_count": len(text),
            "voice": self.VOICE["name"],
            "attempts": 0,
            "latency_ms": 0,
        }
        synthesis_input = texttospeech.SynthesisInput(text=text)

        for attempt in range(self.max_retries):
            metadata["attempts"] = attempt + 1
            try:
                start_time = time.time()
                response = self.client.synthesize_speech(
                    input=synthesis_input, voice=self.voice, audio_config=self.audio_config
                )
                if not response.audio_content:
                    raise RuntimeError("TTS API returned empty audio content")

                metadata["latency_ms"] = int((time.time() - start_time) * 1000)
                metadata["audio_content"] = response.audio_content
                self.total_characters += len(text)
                self.total_requests += 1
                logger.info(
                    f"✓ Audio generated: {len(response.audio_content)} bytes, {metadata['latency_ms']}ms"
                )
                return True, metadata

            except Exception as e:
                error_msg = str(e)
                logger.warning(
                    f"Audio generation failed (attempt {attempt + 1}/{self.max_retries}): {error_msg}"
                )
                if attempt < self.max_retries - 1:
                    delay = self.retry_delay * (2**attempt)
                    logger.info(f"Retrying in {delay:.1f}s...")
                    time.sleep(delay)
                else:
                    self.failed_requests += 1
                    logger.error(f"✗ Audio generation failed after {self.max_retries} attempts: {error_msg}")
                    metadata["error"] = error_msg
                    metadata["error_code"] = getattr(e, "code", None)
                    return False, metadata

        return False, metadata

    def get_statistics(self) -> dict:
        return {
            "total_characters": self.total_characters,
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
        }
