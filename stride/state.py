"""Owned application state plus its hydrate-then-persist lifecycle.

``PersistenceController.init()`` loads the four stored records in parallel and
moves from HYDRATING to READY exactly once. From then on every change made
through ``mutate()`` schedules a write; a single writer thread coalesces the
pending requests and saves a snapshot of all four records, so the latest
state always ends up in the store.
"""
import atexit
import enum
import logging
import queue
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager

from flask import current_app

from stride import store
from stride.auth import LoginPanel
from stride.schemas import Assignment, Role, Section, Submission, User

logger = logging.getLogger(__name__)

SEED_USERS = (
    User(
        id='admin-1',
        username='admin',
        password='admin',
        name='Research Administrator',
        role=Role.ADMIN,
        section=Section.NONE,
    ),
)

_MISSING = object()
_SAVE = object()
_STOP = object()

# Controllers with a running writer; drained once at interpreter exit.
_live = weakref.WeakSet()


class Phase(enum.Enum):
    HYDRATING = 'hydrating'
    READY = 'ready'


def _one(model):
    def parse(raw):
        return model.model_validate(raw)
    return parse


def _many(model):
    def parse(raw):
        if not isinstance(raw, list):
            raise TypeError(f"expected a list of {model.__name__}, got {type(raw).__name__}")
        return [model.model_validate(item) for item in raw]
    return parse


# store key -> (AppState attribute, parser)
SLOTS = {
    store.USER_KEY: ('current_user', _one(User)),
    store.USERS_KEY: ('users', _many(User)),
    store.ASSIGNMENTS_KEY: ('assignments', _many(Assignment)),
    store.SUBMISSIONS_KEY: ('submissions', _many(Submission)),
}


class AppState:
    def __init__(self, users=()):
        self.lock = threading.RLock()
        self.current_user = None
        self.users = list(users)
        self.assignments = []
        self.submissions = []
        self.login = LoginPanel()

    def snapshot(self):
        with self.lock:
            return {
                store.USER_KEY: self.current_user.to_json() if self.current_user else None,
                store.USERS_KEY: [u.to_json() for u in self.users],
                store.ASSIGNMENTS_KEY: [a.to_json() for a in self.assignments],
                store.SUBMISSIONS_KEY: [s.to_json() for s in self.submissions],
            }


class PersistenceController:
    def __init__(self, app, initial_users=()):
        self.app = app
        self.state = AppState(users=initial_users)
        self.phase = Phase.HYDRATING
        self._queue = queue.Queue()
        self._writer = None
        self._lifecycle = threading.Lock()

    @property
    def ready(self):
        return self.phase is Phase.READY

    def init(self):
        with self._lifecycle:
            if self.ready:
                return
            try:
                self._hydrate()
            except Exception:
                logger.exception("Hydration failed, using defaults")
            self.phase = Phase.READY
            self._writer = threading.Thread(target=self._run_writer, name='stride-writer', daemon=True)
            self._writer.start()
            _live.add(self)
        logger.info("State ready: %d users, %d assignments, %d submissions",
                    len(self.state.users), len(self.state.assignments), len(self.state.submissions))
        self.schedule_save()

    def shutdown(self):
        with self._lifecycle:
            writer, self._writer = self._writer, None
            _live.discard(self)
            if writer is None:
                return
            self._queue.put(_STOP)
        writer.join()

    @contextmanager
    def mutate(self):
        with self.state.lock:
            yield self.state
        self.schedule_save()

    def schedule_save(self):
        if self._writer is not None:
            self._queue.put(_SAVE)

    def flush(self):
        """Block until every scheduled write has landed in the store."""
        if self._writer is not None:
            self._queue.join()

    def _hydrate(self):
        with ThreadPoolExecutor(max_workers=len(SLOTS), thread_name_prefix='stride-load') as pool:
            futures = {key: pool.submit(self._load, key) for key in SLOTS}
            loaded = {}
            for key, future in futures.items():
                try:
                    loaded[key] = future.result()
                except Exception:
                    logger.exception("Could not load %s, keeping default", key)

        with self.state.lock:
            for key, value in loaded.items():
                if value is not _MISSING:
                    setattr(self.state, SLOTS[key][0], value)

    def _load(self, key):
        with self.app.app_context():
            raw = store.load(key)
        if raw is None:
            return _MISSING
        return SLOTS[key][1](raw)

    def _run_writer(self):
        running = True
        while running:
            batch = [self._queue.get()]
            while True:
                try:
                    batch.append(self._queue.get_nowait())
                except queue.Empty:
                    break
            running = _STOP not in batch
            try:
                self._persist()
            except Exception:
                logger.exception("Persisting state failed")
            finally:
                for _ in batch:
                    self._queue.task_done()

    def _persist(self):
        records = self.state.snapshot()
        with self.app.app_context():
            for key, value in records.items():
                store.save(key, value)


@atexit.register
def _shutdown_live_controllers():
    for controller in list(_live):
        controller.shutdown()


def get_controller():
    return current_app.extensions['stride']
