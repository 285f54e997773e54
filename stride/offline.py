"""Network-first HTTP fetching with a generational response cache.

``install()`` pre-caches the bootstrap assets (all or nothing), ``activate()``
drops every other cache generation, and ``fetch()`` prefers the network,
stores successful GET responses in the background and falls back to the
cache when the network is unreachable. Requests to excluded API hosts are
passed straight through.
"""
import logging
from datetime import datetime
from concurrent.futures import ThreadPoolExecutor, wait
from urllib.parse import urljoin, urlparse

import requests
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers

from stride import db, DEFAULT_CACHE_NAME
from stride.models import CachedResponse

logger = logging.getLogger(__name__)

BOOTSTRAP_ASSETS = ('/', '/index.html', '/manifest.json')
OFFLINE_DOCUMENT = '/index.html'
EXCLUDED_HOSTS = ('api.groq.com', 'googleapis.com')


class InstallError(Exception):
    pass


class OfflineCache:
    def __init__(self, app, cache_name=DEFAULT_CACHE_NAME, base_url='http://127.0.0.1:5000',
                 bootstrap_assets=BOOTSTRAP_ASSETS, excluded_hosts=EXCLUDED_HOSTS,
                 session=None, timeout=10):
        self.app = app
        self.cache_name = cache_name
        self.base_url = base_url
        self.bootstrap_assets = tuple(bootstrap_assets)
        self.excluded_hosts = tuple(excluded_hosts)
        self.session = session or requests.Session()
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='stride-cache')
        self._pending = []

    @classmethod
    def from_app(cls, app, **kwargs):
        kwargs.setdefault('cache_name', app.config['CACHE_NAME'])
        kwargs.setdefault('base_url', app.config['OFFLINE_BASE_URL'])
        return cls(app, **kwargs)

    def resolve(self, url):
        return urljoin(self.base_url, url)

    def is_excluded(self, url):
        host = urlparse(url).hostname or ''
        return any(domain in host for domain in self.excluded_hosts)

    # --- LIFECYCLE ---
    def install(self):
        """Fetch and store every bootstrap asset. Any failure stores nothing and raises InstallError."""
        fetched = []
        for asset in self.bootstrap_assets:
            url = self.resolve(asset)
            try:
                response = self.session.request('GET', url, timeout=self.timeout)
                response.raise_for_status()
            except requests.RequestException as exc:
                raise InstallError(f"Could not pre-cache {url}: {exc}") from exc
            fetched.append((url, response))

        with self.app.app_context():
            for url, response in fetched:
                self._put('GET', url, response.status_code, dict(response.headers), response.content)
            db.session.commit()
        logger.info("Installed cache %s with %d assets", self.cache_name, len(fetched))

    def is_installed(self):
        urls = {self.resolve(asset) for asset in self.bootstrap_assets}
        with self.app.app_context():
            stored = {row.url for row in CachedResponse.query.filter(
                CachedResponse.generation == self.cache_name,
                CachedResponse.method == 'GET',
                CachedResponse.url.in_(sorted(urls)),
            )}
        return stored == urls

    def activate(self):
        """Delete every cache generation except the current one. Returns the deleted names."""
        if not self.is_installed():
            raise InstallError(f"Cache {self.cache_name} is not installed")
        with self.app.app_context():
            stale = sorted(name for (name,) in db.session.query(CachedResponse.generation).distinct()
                           if name != self.cache_name)
            if stale:
                CachedResponse.query.filter(CachedResponse.generation.in_(stale)).delete(synchronize_session=False)
                db.session.commit()
        if stale:
            logger.info("Dropped cache generations: %s", ", ".join(stale))
        return stale

    # --- FETCH ---
    def fetch(self, url, method='GET', navigate=False):
        url = self.resolve(url)
        method = method.upper()
        if self.is_excluded(url):
            return self.session.request(method, url, timeout=self.timeout)

        try:
            response = self.session.request(method, url, timeout=self.timeout)
        except requests.RequestException:
            cached = self.match(url, method)
            if cached is None and navigate:
                cached = self.match(self.resolve(OFFLINE_DOCUMENT))
            if cached is None:
                raise
            logger.info("Network unavailable, serving %s from cache", url)
            return cached

        self._pending = [f for f in self._pending if not f.done()]
        if method == 'GET' and response.status_code == 200:
            self._pending.append(self._executor.submit(
                self._store, method, url, response.status_code, dict(response.headers), response.content))
        return response

    def match(self, url, method='GET'):
        """Look the request up in any generation, current generation first."""
        with self.app.app_context():
            rows = CachedResponse.query.filter_by(method=method.upper(), url=self.resolve(url)) \
                .order_by(CachedResponse.stored_at.desc()).all()
            if not rows:
                return None
            row = next((r for r in rows if r.generation == self.cache_name), rows[0])
            return _to_response(row)

    @property
    def pending(self):
        """Number of background cache writes not yet finished."""
        return len([f for f in self._pending if not f.done()])

    def drain(self):
        """Wait for background cache writes to finish."""
        pending, self._pending = self._pending, []
        wait(pending)

    def close(self):
        self.drain()
        self._executor.shutdown(wait=True)

    def _store(self, method, url, status_code, headers, content):
        with self.app.app_context():
            try:
                self._put(method, url, status_code, headers, content)
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("Could not cache %s %s", method, url)

    def _put(self, method, url, status_code, headers, content):
        row = CachedResponse.query.filter_by(generation=self.cache_name, method=method, url=url).first()
        if row is None:
            row = CachedResponse(generation=self.cache_name, method=method, url=url)
            db.session.add(row)
        row.status_code = status_code
        row.headers = headers
        row.content = content
        row.stored_at = datetime.utcnow()


def _to_response(row):
    response = requests.Response()
    response.status_code = row.status_code
    response.headers = CaseInsensitiveDict(row.headers or {})
    response.encoding = get_encoding_from_headers(response.headers)
    response.url = row.url
    response._content = row.content or b''
    response.from_cache = True
    return response
