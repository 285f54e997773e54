import time

from stride.reducers import find_user

LOGIN_ERROR_SECONDS = 3.0


class LoginPanel:
    """Login form state with a self-expiring error flag.

    A failed attempt raises the flag and arms a timer; every armed timer
    clears the flag when it fires, whatever was typed in between. Editing
    either field clears it straight away. This is UI feedback only: there is
    no attempt counting or lockout.
    """

    def __init__(self, clock=time.monotonic, delay=LOGIN_ERROR_SECONDS):
        self._clock = clock
        self._delay = delay
        self._error_since = None
        self._timers = []
        self.full_name = ''
        self.password = ''

    @property
    def error(self):
        self._settle()
        return self._error_since is not None

    def submit(self, users, full_name, password):
        self._settle()
        self.full_name = full_name
        self.password = password
        user = find_user(users, full_name, password)
        if user is not None:
            self._error_since = None
            return user
        now = self._clock()
        self._error_since = now
        self._timers.append(now + self._delay)
        return None

    def on_input(self, full_name=None, password=None):
        self._settle()
        if full_name is not None:
            self.full_name = full_name
        if password is not None:
            self.password = password
        self._error_since = None

    def reset(self):
        self.full_name = ''
        self.password = ''
        self._error_since = None
        self._timers = []

    def _settle(self):
        now = self._clock()
        fired = [t for t in self._timers if t <= now]
        if not fired:
            return
        self._timers = [t for t in self._timers if t > now]
        if self._error_since is not None and max(fired) >= self._error_since:
            self._error_since = None
