"""
Remote Activity Sink
Delivers audit entries to a backend server from a background worker
"""

import logging
import threading
import time
from collections import deque
from typing import Dict, Any, List, Optional

import requests

from parkcore.config.settings import EngineConfig, config as default_config
from parkcore.core.models import ActivityEntry, utc_now

logger = logging.getLogger(__name__)


class RemoteActivitySink:
    """
    Audit sink posting entries as JSON

    - POST /api/activity for a single entry
    - POST /api/activity/bulk for a batch
    - GET  /api/health to check connectivity

    `log` only appends to a bounded queue. The worker thread drains it in
    batches, and while the server is unreachable it re-checks health every
    HEALTH_CHECK_INTERVAL seconds before resuming delivery.
    """

    def __init__(self, engine_config: Optional[EngineConfig] = None,
                 session: Optional[requests.Session] = None,
                 sync_logger: Optional[logging.Logger] = None, clock=utc_now,
                 start_worker: bool = True):
        self.config = engine_config or default_config
        self.endpoints = self.config.get_server_endpoints()
        self.clock = clock
        self.sync_logger = sync_logger or logger

        self.session = session or self._create_session()
        self.session.headers.update({
            'Content-Type': 'application/json',
            'User-Agent': 'ParkCoreEngine/1.0'
        })

        self.is_connected = True
        self.last_health_check = 0.0
        self.offline_queue = deque(maxlen=self.config.OFFLINE_QUEUE_SIZE)
        self.lock = threading.RLock()

        self.stats = {
            'entries_sent': 0,
            'failed_requests': 0,
            'queued': 0,
            'queue_overflows': 0,
            'health_checks': 0,
            'last_success': 0,
            'last_failure': 0,
        }

        self.stop_event = threading.Event()
        self.wake_event = threading.Event()
        self.worker = None
        if start_worker:
            self._start_worker()

        self.sync_logger.info(f"🌐 Remote activity sink initialized for {self.config.SYNC_SERVER_URL}")

    def _create_session(self) -> requests.Session:
        """Session whose adapter retries failed connections"""
        session = requests.Session()
        adapter = requests.adapters.HTTPAdapter(
            pool_connections=4,
            pool_maxsize=4,
            max_retries=self.config.MAX_RETRY_ATTEMPTS
        )
        session.mount('http://', adapter)
        session.mount('https://', adapter)
        return session

    def _start_worker(self):
        self.worker = threading.Thread(target=self._delivery_loop, name="activity-sync", daemon=True)
        self.worker.start()

    def _delivery_loop(self):
        while not self.stop_event.is_set():
            self.wake_event.wait(self.config.SYNC_INTERVAL)
            self.wake_event.clear()
            if self.stop_event.is_set():
                break
            try:
                self.run_pending()
            except Exception as e:
                self.sync_logger.error(f"❌ Activity delivery loop error: {e}")
                self.stop_event.wait(self.config.SYNC_INTERVAL)

    def log(self, actor_id: str, action_code: str, details: str = ""):
        entry = ActivityEntry(actor_id=actor_id, action=action_code, details=details, created_at=self.clock())
        self._enqueue(entry.to_dict())
        self.wake_event.set()

    def _enqueue(self, payload: Dict[str, Any]):
        with self.lock:
            if len(self.offline_queue) == self.offline_queue.maxlen:
                self.stats['queue_overflows'] += 1
                self.sync_logger.warning("⚠️ Activity queue full, dropping oldest entry")
            self.offline_queue.append(payload)
            self.stats['queued'] += 1

    def run_pending(self) -> int:
        """One worker cycle: re-check health when disconnected, then deliver the queue"""
        if not self.is_connected:
            if time.time() - self.last_health_check < self.config.HEALTH_CHECK_INTERVAL:
                return 0
            if not self.check_health():
                return 0
        return self.flush_offline_queue()

    def _post(self, url: str, payload: Any) -> bool:
        try:
            response = self.session.post(
                url,
                json=payload,
                timeout=(self.config.CONNECTION_TIMEOUT, self.config.REQUEST_TIMEOUT)
            )
        except requests.RequestException as e:
            self.sync_logger.warning(f"⚠️ Activity delivery failed: {e}")
            return self._mark_failure()

        if response.status_code in (200, 201, 202):
            self.is_connected = True
            self.stats['last_success'] = time.time()
            return True

        self.sync_logger.warning(f"⚠️ Server returned status {response.status_code} for {url}")
        return self._mark_failure()

    def _mark_failure(self) -> bool:
        self.is_connected = False
        self.last_health_check = time.time()
        self.stats['failed_requests'] += 1
        self.stats['last_failure'] = time.time()
        return False

    def check_health(self) -> bool:
        self.stats['health_checks'] += 1
        self.last_health_check = time.time()
        was_connected = self.is_connected
        try:
            response = self.session.get(self.endpoints['health'], timeout=self.config.CONNECTION_TIMEOUT)
            self.is_connected = response.status_code == 200
        except requests.RequestException as e:
            self.sync_logger.debug(f"Health check error: {e}")
            self.is_connected = False

        if self.is_connected and not was_connected:
            self.sync_logger.info("✅ Activity server reachable again")
        return self.is_connected

    def flush_offline_queue(self) -> int:
        """Deliver queued entries in batches; returns how many were delivered"""
        delivered = 0
        while not self.stop_event.is_set() or self.is_connected:
            with self.lock:
                batch: List[Dict[str, Any]] = [
                    self.offline_queue[i]
                    for i in range(min(self.config.BATCH_SYNC_SIZE, len(self.offline_queue)))
                ]
            if not batch:
                break

            if len(batch) == 1:
                ok = self._post(self.endpoints['activity'], batch[0])
            else:
                ok = self._post(self.endpoints['bulk_activity'], {'entries': batch})
            if not ok:
                self.sync_logger.warning(f"⚠️ Delivery paused, {self.get_queue_size()} entries still queued")
                break

            with self.lock:
                for _ in batch:
                    self.offline_queue.popleft()
            delivered += len(batch)

        if delivered:
            self.stats['entries_sent'] += delivered
            self.sync_logger.debug(f"Delivered {delivered} activity entries")
        return delivered

    def get_queue_size(self) -> int:
        with self.lock:
            return len(self.offline_queue)

    def close(self):
        """Stop the worker, deliver what is left if the server is up, release the session"""
        self.stop_event.set()
        self.wake_event.set()
        if self.worker is not None and self.worker.is_alive():
            self.worker.join(timeout=self.config.CONNECTION_TIMEOUT + self.config.REQUEST_TIMEOUT)

        if self.is_connected and self.get_queue_size():
            self.sync_logger.info(f"📡 Delivering {self.get_queue_size()} remaining entries before shutdown")
            self.flush_offline_queue()

        self.session.close()
