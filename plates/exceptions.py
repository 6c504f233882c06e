# plates/exceptions.py

class APIException(Exception):
    """Genel API exception sınıfı"""
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

class InvalidImageError(APIException):
    """Görsel formatı/bozukluğu hatası"""
    def __init__(self, message: str = "Invalid image format"):
        super().__init__(message, 400)

class FileSizeError(APIException):
    """Görsel dosyası boyutu sınırı aşma hatası"""
    def __init__(self, message: str = "File size too large"):
        super().__init__(message, 413)

class ValidationError(APIException):
    """Eksik ya da geçersiz kayıt alanları"""
    def __init__(self, message: str = "Invalid plate metadata"):
        super().__init__(message, 422)

class RecordNotFound(APIException):
    """Katalogda bulunmayan kayıt"""
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Plate record not found: {record_id}", 404)


# --- Yerel depolama hataları ---

class LocalWriteFailed(APIException):
    """Görsel yerel diske yazılamadı; kayıt oluşturulmaz."""
    def __init__(self, message: str = "Failed to write image to local storage"):
        super().__init__(message, 500)

class LocalReadMiss(APIException):
    """Yerel dosya yok ya da okunamıyor. Bir sonraki katmana geçişi tetikler."""
    def __init__(self, path):
        self.path = path
        super().__init__(f"Local image not readable: {path}", 404)


# --- Uzak depolama (S3) hataları ---

class RemoteError(APIException):
    """Uzak nesne deposu hatalarının temeli.

    ``retryable`` geçici hataları, ``disables_service`` ise servisi bu süreç
    boyunca kullanılamaz olarak işaretlemesi gereken hataları belirtir.
    """
    retryable = False
    disables_service = True

    def __init__(self, message: str = "Remote object store error", code: str = None):
        self.code = code
        super().__init__(message, 503)

class RemoteTransient(RemoteError):
    """Ağ/zaman aşımı/5xx; yeniden denenebilir."""
    retryable = True
    disables_service = False

class RemoteUnavailable(RemoteError):
    """Sunucu isteği reddetti ya da servis yapılandırılmamış."""

class RemoteAuthRequired(RemoteError):
    """Kimlik bilgileri eksik ya da geçersiz."""

class RemoteQuotaExceeded(RemoteError):
    """Depolama kotası aşıldı."""

class RemoteRecordMissing(RemoteError):
    """İstenen uzak kayıt yok. Servisin geri kalanını etkilemez."""
    disables_service = False


# --- Uyarılar ---

class OptimizationSizeExceeded(UserWarning):
    """En düşük kalitede bile bayt sınırı aşıldı. Kayıt yine de devam eder."""
