"""Exception taxonomy for chunk building and remote synchronization."""


class NovelSyncError(Exception):
    """Base class for all application errors."""


class ParseAnomaly(NovelSyncError):
    """A heading-like line could not be interpreted.

    Raised inside the chapter detector and absorbed there; never escapes
    ``detect_chapters``.
    """


class BookNotFound(NovelSyncError):
    """Raised when a book id has no record."""

    def __init__(self, book_id: int) -> None:
        super().__init__(f"Book not found: {book_id}")
        self.book_id = book_id


class BuildFailed(NovelSyncError):
    """A chunk build job ended in the ``failed`` state."""

    def __init__(self, job_id: int, message: str | None) -> None:
        super().__init__(
            f"Chunk generation failed for job {job_id}: {message or 'Unknown error'}"
        )
        self.job_id = job_id
        self.error_message = message


class BuildTimeout(NovelSyncError):
    """The caller stopped waiting for a build. The build itself keeps running."""

    def __init__(self, job_id: int, timeout: float) -> None:
        super().__init__(
            f"Timed out after {timeout:.0f}s waiting for chunk job {job_id}"
        )
        self.job_id = job_id
        self.timeout = timeout


class RemoteError(NovelSyncError):
    """Base class for failures reported by the remote note store."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteTransient(RemoteError):
    """Network failure or 5xx response; the operation may succeed on retry."""


class RemoteUnavailable(RemoteTransient):
    """The remote service could not be reached at all."""


class RemoteAuthError(RemoteError):
    """The remote service rejected the API token (401/403)."""


class RemoteNotFound(RemoteError):
    """The referenced note or folder no longer exists (404)."""


def remediation_message(error: Exception, api_url: str = "") -> str:
    """Build the user-facing job error message for a failure.

    Common remote failure modes get a remediation hint; everything else
    falls back to the exception text.

    Args:
        error: The exception that ended the job.
        api_url: Remote API base URL, mentioned for connection failures.

    Returns:
        Human-readable message suitable for ``error_message``.
    """
    if isinstance(error, RemoteAuthError):
        if error.status_code == 403:
            hint = (
                "認證失敗 (403): Token 可能無效或已過期。"
                "請檢查 Joplin 設定中的 API Token，並確保 Web Clipper 服務已啟用。"
            )
        else:
            hint = "未授權 (401): Token 無效。請檢查 Joplin 設定中的 API Token。"
        return f"{hint}\n\n詳細錯誤: {error}"
    if isinstance(error, RemoteUnavailable):
        return (
            f"連線被拒絕: 無法連接到 Joplin API ({api_url})。"
            "請確保 Joplin 應用程式正在運行，並且 Web Clipper 服務已啟用。"
            f"\n\n詳細錯誤: {error}"
        )
    if isinstance(error, RemoteTransient) and error.status_code:
        return (
            f"伺服器錯誤 ({error.status_code}): Joplin API 發生內部錯誤。"
            f"\n\n詳細錯誤: {error}"
        )
    return str(error)
