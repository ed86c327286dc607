"""
Meeting analysis client for the Gemini REST API.

Sends a recording (inline or as an uploaded file reference) or a raw transcript
to the model together with a fixed JSON response schema, and turns the reply
into a FullAnalysis.
"""

import json
import logging
import os
import re
import socket
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

import requests
from pydantic import ValidationError

from .config import GeminiConfig, UploadConfig
from .errors import (
    AnalysisError, ContentBlocked, EmptyResponse, InvalidMediaInput, MalformedResponse,
    NetworkUnavailable, RemoteCallFailed, UploadFailed,
)
from .models import FullAnalysis, MediaInput, RemoteFile
from .upload_poller import UploadStatusPoller

logger = logging.getLogger(__name__)


RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "summary": {
            "type": "OBJECT",
            "properties": {
                "key_points": {
                    "type": "ARRAY",
                    "description": "Lista dos pontos-chave discutidos na reunião, cada um com seu respectivo timestamp.",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "point": {"type": "STRING", "description": "O ponto-chave ou decisão."},
                            "timestamp": {"type": "STRING", "description": "O timestamp (HH:MM:SS) de quando o ponto foi discutido."},
                        },
                        "required": ["point", "timestamp"],
                    },
                },
                "action_items": {
                    "type": "ARRAY",
                    "description": "Lista de ações a serem tomadas com responsáveis e timestamps.",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "action": {"type": "STRING", "description": "A tarefa ou ação a ser executada."},
                            "responsible": {"type": "STRING", "description": "A pessoa ou grupo responsável pela ação."},
                            "timestamp": {"type": "STRING", "description": "O timestamp (HH:MM:SS) de quando a ação foi definida."},
                        },
                        "required": ["action", "responsible", "timestamp"],
                    },
                },
            },
            "required": ["key_points", "action_items"],
        },
        "transcript": {
            "type": "ARRAY",
            "description": "A transcrição completa da conversa, dividida por locutor.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "speaker": {"type": "STRING", "description": "O nome do locutor ou um identificador genérico (ex: 'Locutor A')."},
                    "text": {"type": "STRING", "description": "O texto falado pelo locutor."},
                    "timestamp": {"type": "STRING", "description": "O timestamp (HH:MM:SS) do início da fala."},
                },
                "required": ["speaker", "text", "timestamp"],
            },
        },
    },
    "required": ["summary", "transcript"],
}

MEDIA_PROMPT = """Sua tarefa é analisar a gravação (áudio ou vídeo) de uma reunião e gerar um resumo estruturado e uma transcrição completa em formato JSON.

Siga estas instruções rigorosamente:
1.  **Idioma:** Toda a sua resposta deve ser em português do Brasil.
2.  **Formato de Saída:** A saída DEVE ser um objeto JSON válido que corresponda ao schema fornecido. Não inclua nenhum texto ou formatação fora do objeto JSON (como '```json').
3.  **Análise do Conteúdo:**
    *   **Resumo (summary):**
        *   'key_points': Identifique e liste os pontos mais importantes e as decisões tomadas. Para cada item, inclua o texto do ponto ('point') e o 'timestamp' (HH:MM:SS) exato de quando ele foi mencionado na gravação.
        *   'action_items': Liste todas as tarefas ou ações definidas. Para cada item, especifique a ação ('action'), quem é o 'responsible' e o 'timestamp' (HH:MM:SS) exato de quando a ação foi definida na gravação.
    *   **Transcrição (transcript):**
        *   Transcreva a conversa na íntegra.
        *   Identifique cada locutor de forma consistente (ex: "Locutor A", "Locutor B").
        *   Forneça um 'timestamp' (HH:MM:SS) para o início de cada fala.
        *   **CRÍTICO:** Se um locutor se repetir ou gaguejar, transcreva o que foi dito de forma natural, mas evite gerar laços de repetição infinitos ou excessivamente longos. A transcrição deve ser um reflexo fiel, mas legível, da conversa.

Analise a gravação fornecida e gere o JSON."""

TRANSCRIPT_PROMPT = """Sua tarefa é analisar a transcrição de uma reunião e gerar um resumo estruturado e uma versão formatada da transcrição em JSON.

A transcrição bruta para análise é:
---
{transcript}
---

Siga estas instruções rigorosamente:
1.  **Idioma:** Toda a sua resposta deve ser em português do Brasil.
2.  **Formato de Saída:** A saída DEVE ser um objeto JSON válido que corresponda ao schema fornecido. Não inclua nenhum texto ou formatação fora do objeto JSON (como '```json').
3.  **Análise do Conteúdo:**
    *   **Resumo (summary):**
        *   'key_points': Com base na transcrição, identifique e liste os pontos mais importantes e as decisões tomadas. Para cada item, inclua o texto do ponto ('point') e o 'timestamp' (HH:MM:SS) aproximado de quando ele foi mencionado, baseado na transcrição.
        *   'action_items': Liste todas as tarefas ou ações definidas na transcrição. Para cada item, especifique a ação ('action'), quem é o 'responsible' e o 'timestamp' (HH:MM:SS) aproximado de quando a ação foi definida.
    *   **Transcrição (transcript):**
        *   Formate a transcrição fornecida.
        *   Tente identificar e separar os diferentes locutores de forma consistente (ex: "Locutor A", "Locutor B").
        *   Gere timestamps aproximados (HH:MM:SS) para cada fala, baseando-se na ordem da conversa.
        *   O texto de cada fala deve ser fiel à transcrição original.

Analise a transcrição fornecida e gere o JSON."""

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")


def extract_response_text(data: Dict[str, Any]) -> Tuple[str, Optional[str]]:
    """
    Pull the reply text and the moderation block reason out of a
    generateContent response.

    Returns:
        Tuple of (stripped text, block reason or None)
    """
    block_reason = (data.get("promptFeedback") or {}).get("blockReason")

    texts = []
    candidates = data.get("candidates") or []
    if candidates:
        parts = (candidates[0].get("content") or {}).get("parts") or []
        for part in parts:
            # Thought summaries are not part of the answer
            if part.get("thought"):
                continue
            if part.get("text"):
                texts.append(part["text"])

    return "".join(texts).strip(), block_reason


def parse_analysis_response(text: Optional[str], block_reason: Optional[str] = None) -> FullAnalysis:
    """
    Parse the model reply into a FullAnalysis.

    Args:
        text: Raw reply text, possibly wrapped in a ```json fence
        block_reason: Moderation block reason reported with the reply

    Raises:
        ContentBlocked: Empty reply with a block reason
        EmptyResponse: Empty reply without a block reason
        MalformedResponse: Reply is not JSON or misses required fields
    """
    json_text = (text or "").strip()
    if not json_text:
        if block_reason:
            raise ContentBlocked(block_reason)
        raise EmptyResponse("Model returned an empty response")

    cleaned = json_text
    match = _JSON_FENCE.search(cleaned)
    if match and match.group(1):
        cleaned = match.group(1)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON response from Gemini: {e}")
        logger.debug(f"Original response text: {json_text}")
        raise MalformedResponse(str(e), json_text)

    try:
        return FullAnalysis.model_validate(data)
    except ValidationError as e:
        logger.error(f"Gemini response does not match the analysis schema: {e.error_count()} errors")
        logger.debug(f"Original response text: {json_text}")
        raise MalformedResponse(f"{e.error_count()} campos inválidos ou ausentes", json_text)


def host_reachable(url: str, timeout: float = 3.0) -> bool:
    """Report whether a TCP connection to the URL's host can be opened."""
    parsed = urlparse(url)
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        with socket.create_connection((parsed.hostname, port), timeout=timeout):
            return True
    except OSError:
        return False


class GeminiClient:
    """Client for meeting analysis and file handling on the Gemini API."""

    def __init__(
        self,
        config: Optional[GeminiConfig] = None,
        upload_config: Optional[UploadConfig] = None,
        is_online: Optional[Callable[[], bool]] = None,
    ):
        self.config = config or GeminiConfig()
        self.upload_config = upload_config or UploadConfig()
        self.is_online = is_online or (
            lambda: host_reachable(self.config.base_url, self.config.connectivity_timeout)
        )
        self.base_url = self.config.base_url.rstrip("/")

    @property
    def _params(self) -> Dict[str, str]:
        return {"key": self.config.api_key or ""}

    def model_for(self, deep: bool) -> str:
        return self.config.deep_model if deep else self.config.fast_model

    def generation_config(self, deep: bool) -> Dict[str, Any]:
        """Fast profile has no thinking budget; deep profile gets a large one."""
        generation_config: Dict[str, Any] = {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        }
        if deep:
            generation_config["thinkingConfig"] = {"thinkingBudget": self.config.deep_thinking_budget}
        return generation_config

    def _ensure_online(self, offline_message: Optional[str] = None) -> None:
        if not self.is_online():
            raise NetworkUnavailable("Network unavailable", user_message=offline_message)

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            return response.json().get("error", {}).get("message") or response.text
        except ValueError:
            return response.text

    def _generate(self, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST a generateContent request and return the decoded JSON reply."""
        url = f"{self.base_url}/{self.config.api_version}/models/{model}:generateContent"
        logger.info(f"Calling Gemini model {model}")
        try:
            response = requests.post(url, params=self._params, json=body, timeout=self.config.timeout_seconds)
        except requests.exceptions.Timeout:
            raise RemoteCallFailed(
                "Gemini request timed out",
                user_message="A análise demorou demais para responder. Tente novamente.",
            )
        except requests.exceptions.RequestException as e:
            raise RemoteCallFailed(f"Failed to reach Gemini API: {e}")

        if response.status_code != 200:
            detail = self._error_detail(response)
            logger.error(f"Gemini error: {response.status_code} - {detail[:500]}")
            raise RemoteCallFailed(
                f"Gemini error: {response.status_code}",
                user_message=f"Ocorreu um erro ao analisar a mídia. {detail}",
                technical_details=detail,
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(str(e), response.text)

    def analyze(self, media: MediaInput, deep: bool = False) -> FullAnalysis:
        """
        Analyze a recording and return its summary and transcript.

        Args:
            media: Inline base64 data or an uploaded file URI (the URI wins)
            deep: Use the thorough model profile

        Raises:
            NetworkUnavailable, InvalidMediaInput, RemoteCallFailed,
            ContentBlocked, EmptyResponse, MalformedResponse
        """
        self._ensure_online()

        if media.uri:
            media_part = {"file_data": {"mime_type": media.mime_type, "file_uri": media.uri}}
        elif media.data:
            media_part = {"inline_data": {"mime_type": media.mime_type, "data": media.data}}
        else:
            raise InvalidMediaInput(
                "Neither media data nor URI provided",
                user_message="Nem dados de mídia nem URI foram fornecidos para análise.",
            )

        body = {
            "contents": [{"parts": [media_part, {"text": MEDIA_PROMPT}]}],
            "generationConfig": self.generation_config(deep),
        }
        data = self._generate(self.model_for(deep), body)
        text, block_reason = extract_response_text(data)
        analysis = parse_analysis_response(text, block_reason)
        logger.info(
            f"Analysis complete: {len(analysis.summary.key_points)} key points, "
            f"{len(analysis.summary.action_items)} action items, "
            f"{len(analysis.transcript)} transcript entries"
        )
        return analysis

    def analyze_transcript(self, transcript: str, deep: bool = False) -> FullAnalysis:
        """Analyze a raw text transcript. Same failures as analyze()."""
        self._ensure_online()
        if not transcript or not transcript.strip():
            raise InvalidMediaInput(
                "Transcript is empty",
                user_message="A transcrição está vazia. Nenhuma análise foi realizada.",
            )

        body = {
            "contents": [{"parts": [{"text": TRANSCRIPT_PROMPT.format(transcript=transcript)}]}],
            "generationConfig": self.generation_config(deep),
        }
        data = self._generate(self.model_for(deep), body)
        text, block_reason = extract_response_text(data)
        return parse_analysis_response(text, block_reason)

    def get_file(self, name: str) -> RemoteFile:
        """Fetch the current handle of an uploaded file (e.g. 'files/abc123')."""
        url = f"{self.base_url}/{self.config.api_version}/{name}"
        response = requests.get(url, params=self._params, timeout=30)
        response.raise_for_status()
        return RemoteFile.from_api(response.json())

    def delete_file(self, name: str) -> None:
        """Delete an uploaded file. Failures are logged, never raised."""
        url = f"{self.base_url}/{self.config.api_version}/{name}"
        try:
            response = requests.delete(url, params=self._params, timeout=30)
            response.raise_for_status()
            logger.info(f"Deleted temporary file {name}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to delete temporary file {name}: {e}")

    def upload_file(self, path: str, mime_type: str, display_name: Optional[str] = None) -> RemoteFile:
        """
        Upload a local file through the resumable Files API and wait until it
        is ready to be referenced.

        Raises:
            NetworkUnavailable: Offline before the upload starts
            UploadFailed: The upload request failed
            ProcessingTimeout, ProcessingFailed: The file never became ACTIVE
        """
        self._ensure_online(
            "Você parece estar offline. O envio de arquivos requer uma conexão com a internet."
        )

        display_name = display_name or os.path.basename(path)
        size = os.path.getsize(path)
        logger.info(f"Starting upload of {display_name} ({size} bytes)")

        try:
            start = requests.post(
                f"{self.base_url}/upload/{self.config.api_version}/files",
                params=self._params,
                headers={
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(size),
                    "X-Goog-Upload-Header-Content-Type": mime_type,
                },
                json={"file": {"display_name": display_name}},
                timeout=60,
            )
            start.raise_for_status()
            upload_url = start.headers.get("X-Goog-Upload-URL")
            if not upload_url:
                raise UploadFailed("Upload session URL missing from response")

            with open(path, "rb") as f:
                finish = requests.post(
                    upload_url,
                    headers={
                        "Content-Length": str(size),
                        "X-Goog-Upload-Offset": "0",
                        "X-Goog-Upload-Command": "upload, finalize",
                    },
                    data=f,
                    timeout=self.config.timeout_seconds,
                )
            finish.raise_for_status()
            uploaded = RemoteFile.from_api(finish.json().get("file", {}))
        except (requests.exceptions.RequestException, ValueError, OSError) as e:
            logger.error(f"Error uploading file to Gemini: {e}")
            raise UploadFailed(
                f"Upload failed: {e}",
                user_message=f"Falha ao enviar o arquivo para a IA. {e}",
            )

        logger.info(f"Uploaded {display_name} as {uploaded.name}")
        poller = UploadStatusPoller(
            self.get_file,
            poll_interval=self.upload_config.poll_interval,
            max_attempts=self.upload_config.max_poll_attempts,
        )
        try:
            return poller.wait_until_active(uploaded)
        except AnalysisError:
            self.delete_file(uploaded.name)
            raise
