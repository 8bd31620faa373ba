# motorbid/verification.py
"""Identity verification gate and the World ID cloud verification client.

The proof itself is checked by the World ID developer API; this module only
forwards the bundle and interprets the answer. Persisting the nullifier is
done by `crud.record_verification`.
"""
from typing import Any, Dict

import requests

from .config import WORLDID_ACTION, WORLDID_API_URL, WORLDID_APP_ID, WORLDID_TIMEOUT
from .errors import UpstreamUnavailable, ValidationError, VerificationFailed
from .utils import logger

PROOF_FIELDS = ("merkle_root", "nullifier_hash", "proof", "verification_level", "action")


def is_eligible_to_list(verification_status) -> bool:
    return bool(verification_status)


class WorldIDClient:
    def __init__(self, app_id: str = WORLDID_APP_ID, action: str = WORLDID_ACTION,
                 base_url: str = WORLDID_API_URL, timeout: float = WORLDID_TIMEOUT,
                 session: requests.Session = None):
        self.app_id = app_id
        self.action = action
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def verify_url(self) -> str:
        return f"{self.base_url}/api/v2/verify/{self.app_id}"

    def verify(self, bundle: Dict[str, Any]) -> Dict[str, Any]:
        """Verify a proof bundle. Returns the provider's JSON on success.

        Raises ValidationError for a bundle missing fields, VerificationFailed
        when the action is wrong or the provider rejects the proof, and
        UpstreamUnavailable when the provider can't be reached.
        """
        missing = {f: "required" for f in PROOF_FIELDS if not bundle.get(f)}
        if missing:
            raise ValidationError(missing)
        if bundle["action"] != self.action:
            raise VerificationFailed("unexpected verification action", {"action": bundle["action"]})
        if not self.app_id:
            raise UpstreamUnavailable("world-id", "WORLDID_APP_ID not set")

        payload = {f: bundle[f] for f in PROOF_FIELDS}
        if bundle.get("signal_hash"):
            payload["signal_hash"] = bundle["signal_hash"]
        try:
            resp = self.session.post(self.verify_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("World ID verification request failed: %s", e)
            raise UpstreamUnavailable("world-id", str(e))

        if resp.status_code >= 500:
            logger.warning("World ID returned %s", resp.status_code)
            raise UpstreamUnavailable("world-id", f"HTTP {resp.status_code}")
        try:
            body = resp.json()
        except ValueError:
            body = {"detail": resp.text}
        if not resp.ok:
            logger.info("World ID rejected proof for nullifier %s: %s", bundle["nullifier_hash"], body)
            raise VerificationFailed("World ID verification failed", body)
        return body
