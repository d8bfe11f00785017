from __future__ import annotations

from statemachine import State, StateMachine

from bridge.api.models import ConnectionState


class ConnectionFSM(StateMachine):
    """Connection lifecycle of the transport session.

    disconnected -> connecting -> connected -> disconnected -> connecting -> ...

    There is no final state; the session retries until the process stops.
    The FSM only guards transitions; the session performs the I/O.
    """

    disconnected = State(
        ConnectionState.disconnected.value,
        value=ConnectionState.disconnected.value,
        initial=True,
    )
    connecting = State(ConnectionState.connecting.value, value=ConnectionState.connecting.value)
    connected = State(ConnectionState.connected.value, value=ConnectionState.connected.value)

    dial = disconnected.to(connecting)
    opened = connecting.to(connected)
    dropped = connecting.to(disconnected) | connected.to(disconnected)

    @property
    def connection_state(self) -> ConnectionState:
        return ConnectionState(str(self.current_state.value))
