from .log_service import AuditRecorder
from .device_fingerprint import derive_fingerprint, extract_browser_info
from .geo_ip import extract_client_ip, get_geo_location
from .event_log import Partition, SqlEventLogStore
from .profile_store import SqlProfileStore
from .credentials import LocalCredentialVerifier, VerificationResult
from .captcha import CaptchaResult, HCaptchaClient
from .attestation import AttestationResult, SignedTokenAttestation

__all__ = ['AuditRecorder', 'derive_fingerprint', 'extract_browser_info',
           'extract_client_ip', 'get_geo_location', 'Partition', 'SqlEventLogStore',
           'SqlProfileStore', 'LocalCredentialVerifier', 'VerificationResult',
           'CaptchaResult', 'HCaptchaClient', 'AttestationResult', 'SignedTokenAttestation']
