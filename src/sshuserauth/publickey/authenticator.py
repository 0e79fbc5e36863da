"""
sshuserauth Publickey Authenticator

Client side of the SSH "publickey" user-authentication method (RFC 4252
section 7).

For every identity the key manager offers, in order, and for every
signature algorithm candidate of that identity, in preference order:

1. Query: send the request without a signature. SSH_MSG_USERAUTH_PK_OK
   means the server would accept a signature from this key; any
   SSH_MSG_USERAUTH_FAILURE just moves on to the next candidate.
2. Sign: send the request again with a signature over the session
   identifier and the request. SSH_MSG_USERAUTH_SUCCESS ends the
   exchange. A failure that still lists "publickey" moves on; a
   failure without "publickey" means the server will not accept any
   further key and raises DisallowedMethod.

Signing is only ever asked for after a query was accepted, so keys
backed by hardware tokens are not used needlessly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, NoReturn, Optional, Tuple

import attrs
import structlog
from attrs import validators
from returns.result import Failure

from sshuserauth.core.crypto import constant_time_compare
from sshuserauth.core.exceptions import (
    DisallowedMethod,
    ProtocolError,
    SigningFailure,
    StateError,
)
from sshuserauth.core.state_machine import StateMachineBase, Transition, TransitionEntry
from sshuserauth.core.types import AuthContext, Identity
from sshuserauth.publickey.algorithms import DEFAULT_PUBKEY_ALGORITHMS, select_candidates
from sshuserauth.publickey.key_manager import KeyManager, LocalKeyManager
from sshuserauth.publickey.messages import UserAuthRequest
from sshuserauth.publickey.types import (
    Accepted,
    AuthAccepted,
    CandidateRejected,
    CandidatesExhausted,
    Continue,
    KeyOk,
    KeyOkReceived,
    MethodDisallowed,
    ProbeSent,
    ProtocolViolation,
    PublickeyContext,
    PublickeyState,
    ServerMessage,
    SignedRequestSent,
    SigningFailed,
    Unrecognized,
)

if TYPE_CHECKING:
    from sshuserauth.transport.session import UserAuthTransport

logger = structlog.get_logger()


# =============================================================================
# CONFIGURATION
# =============================================================================


def _algorithm_names(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    return tuple(name.strip() for name in value if name.strip())


def _check_algorithm_names(
    instance: Any, attribute: attrs.Attribute, value: Tuple[str, ...]  # noqa: ARG001
) -> None:
    for name in value:
        if any(ch.isspace() for ch in name) or "," in name:
            raise ValueError(f"Invalid algorithm name: {name!r}")


@attrs.define
class PublickeyConfig:
    """
    Publickey method configuration.

    Attributes:
        pubkey_algorithms: Signature algorithms to offer, most preferred
            first. Names a key type cannot use are ignored for that key.
        use_server_sig_algs: Skip algorithms missing from the server's
            server-sig-algs extension, when the server sent one
    """

    pubkey_algorithms: Tuple[str, ...] = attrs.field(
        default=DEFAULT_PUBKEY_ALGORITHMS,
        converter=_algorithm_names,
        validator=_check_algorithm_names,
    )
    use_server_sig_algs: bool = attrs.field(default=True, validator=validators.instance_of(bool))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "PublickeyConfig":
        """
        Create config from a plain mapping, e.g. a parsed config file.

        pubkey_algorithms may be a list or a comma-separated string.
        Unknown keys are rejected.
        """
        known = {a.name for a in attrs.fields(cls)}
        unknown = set(mapping) - known
        if unknown:
            raise ValueError(f"Unknown publickey options: {', '.join(sorted(unknown))}")
        return cls(**dict(mapping))


# =============================================================================
# PUBLICKEY STATE MACHINE
# =============================================================================


# (from_state, event) -> to_state, by name, for trace verification
ALLOWED_TRANSITIONS: Dict[Tuple[str, str], str] = {
    ("READY", "ProbeSent"): "PROBE_SENT",
    ("READY", "CandidatesExhausted"): "EXHAUSTED",
    ("PROBE_SENT", "KeyOkReceived"): "KEY_ACCEPTED",
    ("PROBE_SENT", "CandidateRejected"): "READY",
    ("PROBE_SENT", "AuthAccepted"): "AUTHENTICATED",
    ("PROBE_SENT", "ProtocolViolation"): "FAILED",
    ("KEY_ACCEPTED", "SignedRequestSent"): "SIGNATURE_SENT",
    ("KEY_ACCEPTED", "SigningFailed"): "FAILED",
    ("SIGNATURE_SENT", "AuthAccepted"): "AUTHENTICATED",
    ("SIGNATURE_SENT", "CandidateRejected"): "READY",
    ("SIGNATURE_SENT", "MethodDisallowed"): "DISALLOWED",
    ("SIGNATURE_SENT", "ProtocolViolation"): "FAILED",
}


@attrs.define
class PublickeyStateMachine(
    StateMachineBase[PublickeyState, Any, PublickeyContext]
):
    """
    State machine for one publickey authentication call.

    States:
    - READY: No pair in flight
    - PROBE_SENT: Query sent, waiting for PK_OK / FAILURE / SUCCESS
    - KEY_ACCEPTED: Server accepted the query, signature pending
    - SIGNATURE_SENT: Signed request sent, waiting for the verdict
    - AUTHENTICATED / DISALLOWED / EXHAUSTED / FAILED: Terminal
    """

    def initial_state(self) -> PublickeyState:
        return PublickeyState.READY

    def transition_table(
        self,
    ) -> Dict[Tuple[PublickeyState, type], TransitionEntry]:
        return {
            (PublickeyState.READY, ProbeSent): (
                PublickeyState.PROBE_SENT,
                self._handle_probe_sent,
            ),
            (PublickeyState.READY, CandidatesExhausted): (
                PublickeyState.EXHAUSTED,
                self._handle_unchanged,
            ),
            (PublickeyState.PROBE_SENT, KeyOkReceived): (
                PublickeyState.KEY_ACCEPTED,
                self._handle_key_ok,
            ),
            (PublickeyState.PROBE_SENT, CandidateRejected): (
                PublickeyState.READY,
                self._handle_rejected,
            ),
            (PublickeyState.PROBE_SENT, AuthAccepted): (
                PublickeyState.AUTHENTICATED,
                self._handle_unchanged,
            ),
            (PublickeyState.PROBE_SENT, ProtocolViolation): (
                PublickeyState.FAILED,
                self._handle_error,
            ),
            (PublickeyState.KEY_ACCEPTED, SignedRequestSent): (
                PublickeyState.SIGNATURE_SENT,
                self._handle_signed,
            ),
            (PublickeyState.KEY_ACCEPTED, SigningFailed): (
                PublickeyState.FAILED,
                self._handle_error,
            ),
            (PublickeyState.SIGNATURE_SENT, AuthAccepted): (
                PublickeyState.AUTHENTICATED,
                self._handle_unchanged,
            ),
            (PublickeyState.SIGNATURE_SENT, CandidateRejected): (
                PublickeyState.READY,
                self._handle_rejected,
            ),
            (PublickeyState.SIGNATURE_SENT, MethodDisallowed): (
                PublickeyState.DISALLOWED,
                self._handle_disallowed,
            ),
            (PublickeyState.SIGNATURE_SENT, ProtocolViolation): (
                PublickeyState.FAILED,
                self._handle_error,
            ),
        }

    @staticmethod
    def _handle_probe_sent(event: ProbeSent, ctx: PublickeyContext) -> PublickeyContext:
        return attrs.evolve(
            ctx,
            key_blob=event.key_blob,
            key_fingerprint=event.key_fingerprint,
            algorithm=event.algorithm,
            key_ok=False,
            attempted=ctx.attempted + ((event.key_blob, event.algorithm),),
            probes_sent=ctx.probes_sent + 1,
        )

    @staticmethod
    def _handle_key_ok(event: KeyOkReceived, ctx: PublickeyContext) -> PublickeyContext:
        if event.algorithm != ctx.algorithm:
            raise ValueError(f"PK_OK for {event.algorithm}, probed {ctx.algorithm}")
        return attrs.evolve(ctx, key_ok=True)

    @staticmethod
    def _handle_signed(event: SignedRequestSent, ctx: PublickeyContext) -> PublickeyContext:
        if event.algorithm != ctx.algorithm:
            raise ValueError(f"Signed with {event.algorithm}, probed {ctx.algorithm}")
        return attrs.evolve(ctx, signatures_sent=ctx.signatures_sent + 1)

    @staticmethod
    def _handle_rejected(event: CandidateRejected, ctx: PublickeyContext) -> PublickeyContext:
        return attrs.evolve(
            ctx,
            key_blob=None,
            key_fingerprint="",
            algorithm="",
            key_ok=False,
            allowed_methods=event.allowed_methods,
            partial_success=event.partial_success,
        )

    @staticmethod
    def _handle_disallowed(event: MethodDisallowed, ctx: PublickeyContext) -> PublickeyContext:
        return attrs.evolve(
            ctx,
            allowed_methods=event.allowed_methods,
            partial_success=event.partial_success,
            error_message="publickey no longer allowed",
        )

    @staticmethod
    def _handle_error(event: Any, ctx: PublickeyContext) -> PublickeyContext:
        return attrs.evolve(ctx, error_message=event.error_message)

    @staticmethod
    def _handle_unchanged(event: Any, ctx: PublickeyContext) -> PublickeyContext:  # noqa: ARG004
        return attrs.evolve(ctx)


# =============================================================================
# INVARIANTS
# =============================================================================


_IN_FLIGHT = (
    PublickeyState.PROBE_SENT,
    PublickeyState.KEY_ACCEPTED,
    PublickeyState.SIGNATURE_SENT,
)


def _attempts_unique(state: PublickeyState, ctx: PublickeyContext) -> bool:  # noqa: ARG001
    """No (key, algorithm) pair is probed twice in one call."""
    return len(set(ctx.attempted)) == len(ctx.attempted)


def _one_pair_in_flight(state: PublickeyState, ctx: PublickeyContext) -> bool:
    if state in _IN_FLIGHT:
        return ctx.key_blob is not None and bool(ctx.algorithm)
    if state == PublickeyState.READY:
        return ctx.key_blob is None
    return True


def _signature_after_key_ok(state: PublickeyState, ctx: PublickeyContext) -> bool:
    if state == PublickeyState.SIGNATURE_SENT:
        return ctx.key_ok
    return ctx.signatures_sent <= ctx.probes_sent


# =============================================================================
# PUBLICKEY AUTHENTICATOR
# =============================================================================


@attrs.define
class PublickeyAuthenticator:
    """
    Publickey user-authentication client.

    Example:
        manager = LocalKeyManager.from_private_keys([rsa_key, ed25519_key])
        authenticator = PublickeyAuthenticator(
            transport=transport,
            key_manager=manager,
            config=PublickeyConfig(pubkey_algorithms=["rsa-sha2-256", "ssh-rsa"]),
        )

        try:
            if authenticator.authenticate("ssh-connection", "jdoe"):
                print("Authenticated")
        except DisallowedMethod as e:
            print(f"Try another method: {e.allowed_methods}")

    Each authenticate() call starts from a fresh state machine; the last
    call's transitions stay available through get_trace().
    """

    transport: UserAuthTransport
    key_manager: Optional[KeyManager] = None
    config: PublickeyConfig = attrs.Factory(PublickeyConfig)

    _state_machine: Optional[PublickeyStateMachine] = attrs.field(default=None, repr=False)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def state(self) -> Optional[PublickeyState]:
        """State reached by the last call, or None before the first."""
        if self._state_machine is None:
            return None
        return self._state_machine.state

    @property
    def context(self) -> Optional[PublickeyContext]:
        """Context of the last call (read-only)."""
        if self._state_machine is None:
            return None
        return self._state_machine.context

    def authenticate(self, service_name: str, username: str) -> bool:
        """
        Try every identity until the server accepts one.

        Args:
            service_name: Service to start after authentication
            username: User to authenticate as

        Returns:
            True if the server accepted a key, False if every
            identity and algorithm was rejected

        Raises:
            DisallowedMethod: Server dropped publickey after a signed attempt
            SigningFailure: The key manager could not sign
            ProtocolError: Unexpected or malformed server reply
        """
        if self.key_manager is None:
            self._logger.warning("publickey_no_key_manager", username=username)
            return False

        auth = AuthContext(
            session_id=self.transport.session_id,
            service_name=service_name,
            username=username,
        )
        machine = self._new_state_machine(auth)
        self._state_machine = machine

        self._logger.info(
            "publickey_auth_start",
            username=username,
            service=service_name,
        )

        for identity in self.key_manager.identities():
            for algorithm in self._candidates(identity):
                if (identity.blob, algorithm) in machine.context.attempted:
                    self._logger.debug(
                        "publickey_candidate_skipped",
                        fingerprint=identity.fingerprint,
                        algorithm=algorithm,
                    )
                    continue
                if self._attempt(machine, auth, identity, algorithm):
                    return True

        self._advance(machine, CandidatesExhausted())
        self._logger.info(
            "publickey_exhausted",
            username=username,
            probes=machine.context.probes_sent,
            signatures=machine.context.signatures_sent,
        )
        return False

    def _candidates(self, identity: Identity) -> List[str]:
        server_sig_algs = (
            getattr(self.transport, "server_sig_algs", None)
            if self.config.use_server_sig_algs
            else None
        )
        return select_candidates(self.config.pubkey_algorithms, identity, server_sig_algs)

    def _attempt(
        self,
        machine: PublickeyStateMachine,
        auth: AuthContext,
        identity: Identity,
        algorithm: str,
    ) -> bool:
        """Query, then sign, with one (identity, algorithm) pair."""
        request = UserAuthRequest(
            username=auth.username,
            service_name=auth.service_name,
            algorithm=algorithm,
            key_blob=identity.blob,
        )

        self._advance(
            machine,
            ProbeSent(
                key_blob=identity.blob,
                key_fingerprint=identity.fingerprint,
                algorithm=algorithm,
            ),
        )
        self.transport.send_auth_request(request.to_bytes())
        self._logger.debug(
            "publickey_probe_sent",
            fingerprint=identity.fingerprint,
            algorithm=algorithm,
        )

        reply = self.transport.receive_next()

        if isinstance(reply, Accepted):
            self._advance(machine, AuthAccepted())
            self._logger.info(
                "publickey_accepted",
                fingerprint=identity.fingerprint,
                algorithm=algorithm,
                signed=False,
            )
            return True

        if isinstance(reply, Continue):
            self._advance(
                machine,
                CandidateRejected(
                    allowed_methods=reply.allowed_methods,
                    partial_success=reply.partial_success,
                ),
            )
            self._logger.debug(
                "publickey_probe_rejected",
                fingerprint=identity.fingerprint,
                algorithm=algorithm,
                allowed_methods=sorted(reply.allowed_methods),
            )
            return False

        if not isinstance(reply, KeyOk):
            self._protocol_error(machine, reply, "query")
        if reply.algorithm != algorithm:
            self._protocol_error(
                machine,
                reply,
                "query",
                detail=f"PK_OK algorithm {reply.algorithm} does not match probe for {algorithm}",
            )
        if not constant_time_compare(reply.key_blob, identity.blob):
            self._protocol_error(
                machine,
                reply,
                "query",
                detail=f"PK_OK key blob does not match probed key {identity.fingerprint}",
            )

        self._advance(machine, KeyOkReceived(algorithm=algorithm))
        self._logger.debug(
            "publickey_key_ok",
            fingerprint=identity.fingerprint,
            algorithm=algorithm,
        )

        signed = self._sign(machine, auth, identity, request)
        self._advance(machine, SignedRequestSent(algorithm=algorithm))
        self.transport.send_auth_request(signed.to_bytes())
        self._logger.debug(
            "publickey_signed_request_sent",
            fingerprint=identity.fingerprint,
            algorithm=algorithm,
        )

        reply = self.transport.receive_next()

        if isinstance(reply, Accepted):
            self._advance(machine, AuthAccepted())
            self._logger.info(
                "publickey_accepted",
                fingerprint=identity.fingerprint,
                algorithm=algorithm,
                signed=True,
            )
            return True

        if isinstance(reply, Continue):
            if reply.allows_publickey:
                self._advance(
                    machine,
                    CandidateRejected(
                        allowed_methods=reply.allowed_methods,
                        partial_success=reply.partial_success,
                    ),
                )
                self._logger.info(
                    "publickey_signature_rejected",
                    fingerprint=identity.fingerprint,
                    algorithm=algorithm,
                    partial_success=reply.partial_success,
                )
                return False

            self._advance(
                machine,
                MethodDisallowed(
                    allowed_methods=reply.allowed_methods,
                    partial_success=reply.partial_success,
                ),
            )
            self._logger.warning(
                "publickey_disallowed",
                fingerprint=identity.fingerprint,
                algorithm=algorithm,
                allowed_methods=sorted(reply.allowed_methods),
            )
            raise DisallowedMethod(reply.allowed_methods)

        self._protocol_error(machine, reply, "signature")

    def _sign(
        self,
        machine: PublickeyStateMachine,
        auth: AuthContext,
        identity: Identity,
        request: UserAuthRequest,
    ) -> UserAuthRequest:
        """Ask the key manager for a signature and attach it."""
        payload = request.signing_payload(auth.session_id)

        try:
            signature = self.key_manager.sign(identity, request.algorithm, payload)
        except SigningFailure as e:
            self._signing_failed(machine, identity, str(e))
            raise
        except Exception as e:
            self._signing_failed(machine, identity, str(e))
            raise SigningFailure(f"Signing with {identity.fingerprint} failed: {e}") from e

        if not isinstance(signature, (bytes, bytearray)) or not signature:
            self._signing_failed(machine, identity, "empty signature")
            raise SigningFailure(f"Key manager returned no signature for {identity.fingerprint}")

        return request.with_signature(bytes(signature))

    def _signing_failed(
        self, machine: PublickeyStateMachine, identity: Identity, error: str
    ) -> None:
        self._advance(machine, SigningFailed(error_message=error))
        self._logger.error(
            "publickey_signing_failed",
            fingerprint=identity.fingerprint,
            error=error,
        )

    def _protocol_error(
        self,
        machine: PublickeyStateMachine,
        reply: ServerMessage,
        stage: str,
        detail: Optional[str] = None,
    ) -> NoReturn:
        code = reply.message_type if isinstance(reply, Unrecognized) else None
        message = detail or f"Unexpected reply to publickey {stage}: {type(reply).__name__}"
        if code is not None:
            message = f"{message} (message type {code})"

        self._advance(machine, ProtocolViolation(error_message=message))
        self._logger.error("publickey_protocol_error", stage=stage, error=message)
        raise ProtocolError(message, code=code)

    def _new_state_machine(self, auth: AuthContext) -> PublickeyStateMachine:
        machine = PublickeyStateMachine(
            _state=PublickeyState.READY,
            _context=PublickeyContext(
                username=auth.username,
                service_name=auth.service_name,
            ),
            _logger=self._logger,
        )
        machine.add_invariant("attempts_unique", _attempts_unique)
        machine.add_invariant("one_pair_in_flight", _one_pair_in_flight)
        machine.add_invariant("signature_after_key_ok", _signature_after_key_ok)
        machine.add_invariant(
            "session_fields_fixed",
            lambda state, ctx: (
                ctx.username == auth.username and ctx.service_name == auth.service_name
            ),
        )
        return machine

    @staticmethod
    def _advance(machine: PublickeyStateMachine, event: Any) -> None:
        result = machine.process_event(event)
        if isinstance(result, Failure):
            raise StateError(result.failure())

    def get_trace(self) -> List[Transition]:
        """Transitions of the last authenticate() call."""
        if self._state_machine is None:
            return []
        return self._state_machine.get_trace()

    def export_trace_json(self) -> str:
        """Export the last call's trace as JSON."""
        if self._state_machine is None:
            return "{}"
        return self._state_machine.export_trace_json()


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def create_publickey_authenticator(
    transport: UserAuthTransport,
    private_keys: Iterable[Any] = (),
    pubkey_algorithms: Optional[Iterable[str]] = None,
) -> PublickeyAuthenticator:
    """
    Create an authenticator over in-memory private keys.

    Args:
        transport: Session transport
        private_keys: cryptography private keys, in the order to try them
        pubkey_algorithms: Algorithm preference list (default: all supported)

    Returns:
        Configured PublickeyAuthenticator
    """
    config = (
        PublickeyConfig()
        if pubkey_algorithms is None
        else PublickeyConfig(pubkey_algorithms=pubkey_algorithms)
    )
    return PublickeyAuthenticator(
        transport=transport,
        key_manager=LocalKeyManager.from_private_keys(private_keys),
        config=config,
    )
