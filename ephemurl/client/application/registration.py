"""
Application layer: Provisioning a new rotating beacon.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ephemurl.client.application.runner import current_token, current_url
from ephemurl.common import tokens
from ephemurl.common.crypto import b64u_encode
from ephemurl.common.models import BeaconRecord, BeaconState, RegisterBeaconRequest

if TYPE_CHECKING:
    from ephemurl.client.context import BeaconContext

MICROS_PER_SECOND = 1_000_000

logger = logging.getLogger(__name__)


class BeaconRegistrationFlow:
    """Key agreement plus service round-trip, with local rollback on failure.

    KeysGenerated -> LocalRecordCreated -> ServerRoundTrip -> Committed | RolledBack
    """

    def __init__(self, context: BeaconContext):
        self.context = context

    async def register(
        self, rotation_exponent: int, tag: str | None = None
    ) -> BeaconRecord:
        """Register a new beacon and start advertising it."""
        auth_header = self.context.credentials.auth_header()
        tokens.rotation_period(rotation_exponent)

        server_public_key = await self.context.api.get_registration_params(
            auth_header
        )
        key_agreement = self.context.key_agreement
        key_pair, shared_secret = key_agreement.agree_nonzero(server_public_key)
        identity_key = key_agreement.derive_identity_key(
            shared_secret, server_public_key, key_pair.public_key
        )

        record = BeaconRecord(
            kind=self.context.config.KIND_ROTATING,
            identity_key=identity_key,
            rotation_exponent=rotation_exponent,
            epoch=0,
            tag=tag,
        )
        self.context.store.insert(record)
        logger.debug("Created unregistered beacon %s", record.record_id)

        committed = False
        try:
            initial_token = tokens.token_for_counter(identity_key, 0)
            registration = RegisterBeaconRequest(
                service_public_key=b64u_encode(server_public_key),
                beacon_public_key=b64u_encode(key_pair.public_key),
                initial_eid=tokens.encode_token(initial_token),
                initial_clock=0,
                rotation_exponent=rotation_exponent,
                tag=tag,
            )
            response = await self.context.api.register_beacon(
                auth_header, registration
            )
            committed = True
        finally:
            if not committed:
                self._roll_back(record)

        async with self.context.locked(record.record_id):
            record.server_id = response.id
            record.epoch = response.epoch // MICROS_PER_SECOND
            record.state = BeaconState.REGISTERED
            self.context.store.update(record, {"server_id", "epoch", "state"})
            logger.info(
                "Registered beacon %s as %s (epoch %d)",
                record.record_id,
                record.server_id,
                record.epoch,
            )

            self.context.advertiser.start_advertising(
                record,
                current_url(self.context, record),
                current_token(self.context, record),
            )
            record.state = BeaconState.ACTIVE
            self.context.store.update(record, {"state"})
        return record

    def _roll_back(self, record: BeaconRecord) -> None:
        logger.warning(
            "Registration of beacon %s failed, deleting local record",
            record.record_id,
        )
        self.context.store.delete(record)
        self.context.forget_record(record.record_id)
