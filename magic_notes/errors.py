"""
Error taxonomy and handling for Magic Notes.

Every failure that reaches a caller is an AnalysisError subclass carrying a
category, a severity and a Portuguese message suitable for showing to the user.
No failure here is fatal: callers report the message and let the user retry.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels for categorizing failures."""
    LOW = "low"           # Expected user-facing condition
    MEDIUM = "medium"     # Operation failed, user can retry
    HIGH = "high"         # Feature unavailable until setup is fixed
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better handling and user guidance."""
    NETWORK = "network"
    MEDIA_INPUT = "media_input"
    MODERATION = "moderation"
    RESPONSE = "response"
    REMOTE = "remote"
    UPLOAD = "upload"
    MICROPHONE = "microphone"
    SPEECH = "speech"
    STORAGE = "storage"
    USER_INPUT = "user_input"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Where an error happened."""
    component: str = "unknown"
    operation: str = "unknown"
    timestamp: datetime = field(default_factory=datetime.now)
    additional_data: Optional[Dict[str, Any]] = None


class AnalysisError(Exception):
    """Base error with categorization and a user-facing message."""

    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.MEDIUM
    status_code = 500
    default_user_message = "Ocorreu um erro ao analisar a mídia. Por favor, tente novamente."

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        technical_details: Optional[str] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or self.default_user_message
        self.technical_details = technical_details
        self.context = context or ErrorContext()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "user_message": self.user_message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.context.timestamp.isoformat(),
            "component": self.context.component,
            "operation": self.context.operation,
            "technical_details": self.technical_details,
        }


class NetworkUnavailable(AnalysisError):
    category = ErrorCategory.NETWORK
    status_code = 503
    default_user_message = "Você parece estar offline. Verifique sua conexão e tente novamente."


class InvalidMediaInput(AnalysisError):
    category = ErrorCategory.MEDIA_INPUT
    severity = ErrorSeverity.LOW
    status_code = 400
    default_user_message = "Por favor, selecione um arquivo de áudio ou vídeo válido."


class ContentBlocked(AnalysisError):
    """The model refused the request for moderation reasons."""
    category = ErrorCategory.MODERATION
    severity = ErrorSeverity.LOW
    status_code = 422

    def __init__(self, reason: str, **kwargs):
        self.reason = reason
        kwargs.setdefault(
            "user_message",
            f"A análise foi bloqueada. Motivo: {reason}. "
            "Por favor, ajuste o conteúdo e tente novamente.",
        )
        super().__init__(f"Analysis blocked: {reason}", **kwargs)


class EmptyResponse(AnalysisError):
    category = ErrorCategory.RESPONSE
    status_code = 502
    default_user_message = (
        "A IA retornou uma resposta vazia. Isso pode ocorrer devido a filtros de "
        "segurança ou um problema temporário. Tente novamente."
    )


class MalformedResponse(AnalysisError):
    """The reply could not be parsed into a FullAnalysis; keeps the raw text."""
    category = ErrorCategory.RESPONSE
    status_code = 502

    def __init__(self, detail: str, raw_text: str, **kwargs):
        self.detail = detail
        self.raw_text = raw_text
        kwargs.setdefault(
            "user_message",
            f"A IA retornou uma resposta mal formatada. Detalhes do erro: {detail}",
        )
        kwargs.setdefault("technical_details", raw_text)
        super().__init__(f"Malformed analysis response: {detail}", **kwargs)


class RemoteCallFailed(AnalysisError):
    category = ErrorCategory.REMOTE
    status_code = 502


class UploadFailed(AnalysisError):
    category = ErrorCategory.UPLOAD
    status_code = 502
    default_user_message = "Falha ao enviar o arquivo para a IA."


class ProcessingTimeout(AnalysisError):
    """Uploaded file did not become ACTIVE within the polling budget."""
    category = ErrorCategory.UPLOAD
    status_code = 504

    def __init__(self, state: str, **kwargs):
        self.state = state
        kwargs.setdefault(
            "user_message",
            f"O arquivo não pôde ser processado a tempo. Estado final: {state}",
        )
        super().__init__(f"File still {state} after polling budget", **kwargs)


class ProcessingFailed(AnalysisError):
    """Uploaded file reached a terminal state other than ACTIVE."""
    category = ErrorCategory.UPLOAD
    status_code = 502

    def __init__(self, state: str, **kwargs):
        self.state = state
        kwargs.setdefault(
            "user_message",
            f"O arquivo não pôde ser processado. Estado final: {state}",
        )
        super().__init__(f"File processing ended in state {state}", **kwargs)


class MicrophonePermissionDenied(AnalysisError):
    category = ErrorCategory.MICROPHONE
    severity = ErrorSeverity.HIGH
    status_code = 403
    default_user_message = (
        "Permissão para o microfone negada. Por favor, habilite o acesso nas "
        "configurações do seu sistema."
    )


class NoSpeechDetected(AnalysisError):
    category = ErrorCategory.SPEECH
    severity = ErrorSeverity.LOW
    status_code = 422
    default_user_message = "Nenhuma fala foi detectada."


class RecognitionNetworkError(AnalysisError):
    category = ErrorCategory.SPEECH
    status_code = 503
    default_user_message = "Erro de rede. Verifique sua conexão com a internet e tente novamente."


class AnalysisInProgress(AnalysisError):
    category = ErrorCategory.USER_INPUT
    severity = ErrorSeverity.LOW
    status_code = 409
    default_user_message = "Já existe uma análise em andamento. Aguarde a conclusão."


class NotFound(AnalysisError):
    category = ErrorCategory.USER_INPUT
    severity = ErrorSeverity.LOW
    status_code = 404
    default_user_message = "Item não encontrado."


# Speech recognition error codes, as reported by recognizers.
RECOGNITION_ERRORS = {
    "not-allowed": MicrophonePermissionDenied,
    "service-not-allowed": MicrophonePermissionDenied,
    "audio-capture": MicrophonePermissionDenied,
    "no-speech": NoSpeechDetected,
    "network": RecognitionNetworkError,
}


def recognition_error(code: str) -> AnalysisError:
    """Map a recognizer error code to a typed error."""
    error_cls = RECOGNITION_ERRORS.get(code)
    if error_cls is None:
        return AnalysisError(
            f"Speech recognition error: {code}",
            user_message="Ocorreu um erro no reconhecimento de fala.",
        )
    return error_cls(f"Speech recognition error: {code}")


def _log_error(error: AnalysisError) -> None:
    """Log error with appropriate level based on severity."""
    log_message = (
        f"[{error.category.value.upper()}] {error.message} "
        f"(Component: {error.context.component}, Operation: {error.context.operation})"
    )

    if error.severity == ErrorSeverity.CRITICAL:
        logger.critical(log_message)
    elif error.severity == ErrorSeverity.HIGH:
        logger.error(log_message)
    elif error.severity == ErrorSeverity.MEDIUM:
        logger.warning(log_message)
    else:
        logger.info(log_message)

    if error.technical_details:
        logger.debug(f"Technical details: {error.technical_details}")


def handle_error(error: Exception, component: str, operation: str) -> AnalysisError:
    """
    Convert any exception into an AnalysisError with context and log it.

    Args:
        error: The error that occurred
        component: Component where error occurred
        operation: Operation that failed

    Returns:
        AnalysisError ready to be reported to the user
    """
    if isinstance(error, AnalysisError):
        analysis_error = error
        if analysis_error.context.component == "unknown":
            analysis_error.context.component = component
            analysis_error.context.operation = operation
    else:
        analysis_error = AnalysisError(
            str(error) or type(error).__name__,
            technical_details=f"{type(error).__name__}: {error}",
            context=ErrorContext(component=component, operation=operation),
        )

    _log_error(analysis_error)
    return analysis_error
