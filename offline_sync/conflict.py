"""
Conflict resolution strategies for queued mutations.

A conflict arises when a queued write cannot be applied blindly because
the remote row no longer looks like what the local mutation assumed.
Resolution is a pure function of the queued item, the server snapshot
and the configured strategy:

- server-wins: keep the server row
- client-wins: keep the queued payload
- merge: server row with the queued payload on top, server version marker kept
- manual: no automatic data; the item stays queued for review
"""

from typing import Any

from .models import ConflictResolution, ConflictStrategy, QueueItem
from .version import DEFAULT_VERSION_FIELD


def merge_rows(
    server_data: dict[str, Any],
    local_data: dict[str, Any],
    version_field: str = DEFAULT_VERSION_FIELD,
) -> dict[str, Any]:
    """Shallow-merge local changes onto the server row.

    Local fields win, except the version marker which always comes from
    the server so a merge can never move the server's clock backwards.
    If the server row has no marker, none is written.

    Args:
        server_data: Row as currently stored remotely
        local_data: Payload of the queued mutation
        version_field: Name of the version marker field

    Returns:
        Merged row
    """
    merged = {**server_data, **local_data}
    if version_field in server_data:
        merged[version_field] = server_data[version_field]
    else:
        merged.pop(version_field, None)
    return merged


class ConflictResolver:
    """Resolves conflicts between queued mutations and server rows."""

    def __init__(self, version_field: str = DEFAULT_VERSION_FIELD):
        """Initialize the conflict resolver.

        Args:
            version_field: Name of the version marker field used by merge
        """
        self.version_field = version_field

    def resolve(
        self,
        item: QueueItem,
        server_data: dict[str, Any],
        strategy: ConflictStrategy | str = ConflictStrategy.SERVER_WINS,
    ) -> ConflictResolution:
        """Resolve a conflict using the given strategy.

        Args:
            item: Queued mutation that conflicted
            server_data: Server snapshot fetched during the attempt
            strategy: Resolution strategy (unknown names mean server-wins)

        Returns:
            ConflictResolution; resolved_data is None for manual
        """
        strategy = ConflictStrategy.parse(strategy)

        if strategy == ConflictStrategy.CLIENT_WINS:
            return ConflictResolution(strategy=strategy, resolved_data=dict(item.data))

        if strategy == ConflictStrategy.MERGE:
            return ConflictResolution(
                strategy=strategy,
                resolved_data=merge_rows(server_data, item.data, self.version_field),
            )

        if strategy == ConflictStrategy.MANUAL:
            return ConflictResolution(strategy=strategy)

        return ConflictResolution(
            strategy=ConflictStrategy.SERVER_WINS,
            resolved_data=dict(server_data),
        )


def resolve(
    item: QueueItem,
    server_data: dict[str, Any],
    strategy: ConflictStrategy | str = ConflictStrategy.SERVER_WINS,
    version_field: str = DEFAULT_VERSION_FIELD,
) -> ConflictResolution:
    """Module-level shortcut for ConflictResolver(version_field).resolve()."""
    return ConflictResolver(version_field).resolve(item, server_data, strategy)
