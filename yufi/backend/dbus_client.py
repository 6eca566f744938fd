"""YuFi - Thin synchronous client for the D-Bus system bus.

Wraps a ``Gio.DBusConnection`` so that the NetworkManager backend can
work with plain Python values.  Arguments may contain
:class:`~yufi.backend.nm_schema.TypedValue` items wherever the D-Bus
signature has a variant; they are turned into ``GLib.Variant`` here.

Signal streams run their own ``GLib.MainContext`` on the calling thread,
so they can be consumed from any worker thread without touching the GTK
main loop.
"""

import collections
import logging
from typing import Iterable, Iterator, Optional, Sequence, Tuple

import gi
gi.require_version('Gio', '2.0')
from gi.repository import Gio, GLib

from ..errors import BackendError
from .nm_schema import BUS_NAME, PROPERTIES_INTERFACE, TypedValue, error_for_name

logger = logging.getLogger(__name__)

# (object path or None, interface, member or None)
SignalMatch = Tuple[Optional[str], str, Optional[str]]

# (object path, interface, member, unpacked arguments)
Signal = Tuple[str, str, str, tuple]


# ---------------------------------------------------------------------------
# Value conversion
# ---------------------------------------------------------------------------

def _prepare(value):
    """Replace every TypedValue in *value* with a GLib.Variant."""
    if isinstance(value, TypedValue):
        return GLib.Variant(value.signature, _prepare(value.value))
    if isinstance(value, dict):
        return {key: _prepare(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_prepare(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_prepare(item) for item in value)
    return value


def _typed_unpack(variant):
    """Unpack *variant* but keep every nested ``v`` as a TypedValue."""
    signature = variant.get_type_string()
    if signature == 'v':
        inner = variant.get_variant()
        return TypedValue(inner.get_type_string(), _typed_unpack(inner))
    if signature == 'ay':
        return bytes(variant.unpack())
    if signature.startswith('a{'):
        result = {}
        for index in range(variant.n_children()):
            entry = variant.get_child_value(index)
            key = entry.get_child_value(0).unpack()
            result[key] = _typed_unpack(entry.get_child_value(1))
        return result
    if signature.startswith('a'):
        return [_typed_unpack(variant.get_child_value(index))
                for index in range(variant.n_children())]
    if signature.startswith('('):
        return tuple(_typed_unpack(variant.get_child_value(index))
                     for index in range(variant.n_children()))
    return variant.unpack()


def _backend_error(error: GLib.Error) -> BackendError:
    """Convert a GLib.Error raised by a bus call into a BackendError."""
    name = Gio.DBusError.get_remote_error(error)
    message = error.message or str(error)
    if name and message.startswith('GDBus.Error:'):
        # "GDBus.Error:<name>: <text>"
        message = message.split(': ', 1)[-1]
    return error_for_name(name, message)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GioBus:
    """Blocking call/property/signal access to one bus name.

    Args:
        bus_name: Well-known name of the remote service.
        timeout_ms: Timeout applied to every method call.
        connection: Existing Gio.DBusConnection; the system bus if None.

    Raises:
        BackendError: If the system bus cannot be reached.
    """

    def __init__(self, bus_name: str = BUS_NAME, timeout_ms: int = 25000,
                 connection=None):
        self._bus_name = bus_name
        self._timeout_ms = timeout_ms
        if connection is None:
            try:
                connection = Gio.bus_get_sync(Gio.BusType.SYSTEM, None)
            except GLib.Error as e:
                raise BackendError(f'System bus unavailable: {e.message}') from e
        self._connection = connection

    # -- Calls ---------------------------------------------------------------

    def call(self, path: str, interface: str, method: str,
             args: Sequence = (), signature: Optional[str] = None,
             typed: bool = False) -> tuple:
        """Call *method* and return the reply as a tuple.

        Args:
            path: Object path.
            interface: Interface owning the method.
            method: Method name.
            args: Positional arguments, TypedValue allowed for variants.
            signature: Argument signature without the outer parentheses.
            typed: Keep variants in the reply as TypedValue.
        """
        parameters = None
        if signature:
            parameters = GLib.Variant(f'({signature})', _prepare(tuple(args)))
        logger.debug('D-Bus call %s.%s on %s', interface, method, path)
        try:
            reply = self._connection.call_sync(
                self._bus_name, path, interface, method, parameters,
                None, Gio.DBusCallFlags.NONE, self._timeout_ms, None)
        except GLib.Error as e:
            raise _backend_error(e) from e
        if reply is None:
            return ()
        return _typed_unpack(reply) if typed else reply.unpack()

    def get_property(self, path: str, interface: str, name: str):
        return self.call(path, PROPERTIES_INTERFACE, 'Get',
                         (interface, name), 'ss')[0]

    def get_all_properties(self, path: str, interface: str) -> dict:
        return self.call(path, PROPERTIES_INTERFACE, 'GetAll',
                         (interface,), 's')[0]

    def set_property(self, path: str, interface: str, name: str,
                     value: TypedValue) -> None:
        self.call(path, PROPERTIES_INTERFACE, 'Set',
                  (interface, name, value), 'ssv')

    # -- Signals -------------------------------------------------------------

    def signals(self, matches: Iterable[SignalMatch],
                idle_timeout: float = 0.5) -> Iterator[Optional[Signal]]:
        """Yield signals matching any of *matches* as they arrive.

        Yields None whenever *idle_timeout* seconds pass without a
        signal.  Subscriptions are dropped when the generator is closed.
        """
        context = GLib.MainContext.new()
        context.push_thread_default()
        received = collections.deque()
        idle = []
        subscriptions = []

        def on_signal(_connection, _sender, path, interface, member, parameters, *_):
            received.append((path, interface, member, parameters.unpack()))

        def on_tick(*_):
            idle.append(True)
            return GLib.SOURCE_CONTINUE

        tick = GLib.timeout_source_new(max(1, int(idle_timeout * 1000)))
        tick.set_callback(on_tick)
        tick.attach(context)
        try:
            for path, interface, member in matches:
                subscriptions.append(self._connection.signal_subscribe(
                    self._bus_name, interface, member, path, None,
                    Gio.DBusSignalFlags.NONE, on_signal))
            while True:
                context.iteration(True)
                if received:
                    idle.clear()
                    while received:
                        yield received.popleft()
                elif idle:
                    idle.clear()
                    yield None
        finally:
            for subscription in subscriptions:
                self._connection.signal_unsubscribe(subscription)
            tick.destroy()
            context.pop_thread_default()
