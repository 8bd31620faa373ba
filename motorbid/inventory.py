# motorbid/inventory.py
"""Client for the external car inventory API (`GET`/`POST` on a flat car schema).

This path has no auction concept at all; it is a straight passthrough.
"""
from typing import Dict, List, Optional

import requests

from .config import INVENTORY_API_URL, INVENTORY_TIMEOUT
from .errors import UpstreamUnavailable
from .utils import logger, retry


class InventoryClient:
    def __init__(self, base_url: str = INVENTORY_API_URL, timeout: float = INVENTORY_TIMEOUT,
                 session: requests.Session = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @retry(requests.ConnectionError, tries=3, delay=1, backoff=2)
    def _get_cars(self) -> List[Dict]:
        resp = self.session.get(self.base_url, timeout=self.timeout, headers={"Cache-Control": "no-store"})
        resp.raise_for_status()
        return resp.json()

    def list_cars(self) -> List[Dict]:
        try:
            return self._get_cars()
        except requests.RequestException as e:
            logger.warning("Inventory API list failed: %s", e)
            raise UpstreamUnavailable("inventory", str(e))

    def get_car(self, car_id: str) -> Optional[Dict]:
        # the inventory API has no single-item endpoint
        for car in self.list_cars():
            if str(car.get("id")) == str(car_id):
                return car
        return None

    def add_car(self, car: Dict) -> Dict:
        try:
            resp = self.session.post(self.base_url, json=car, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            # a timed out POST may still have been applied; callers should re-query
            logger.warning("Inventory API add failed: %s", e)
            raise UpstreamUnavailable("inventory", str(e))
        logger.info("Added car to inventory: %s %s", car.get("marca"), car.get("modelo"))
        return resp.json()
