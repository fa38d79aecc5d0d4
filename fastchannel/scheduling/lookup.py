"""Resolve the channel identifier a playout engine sends back.

Engines do not always echo the stored id, so a reference is tried as the id,
then as the exact name, then as an alias: the name lowercased with every
non-alphanumeric character removed.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Optional

from fastchannel.db import ChannelRow
from fastchannel.store import TimelineStore

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class LookupVia(str, enum.Enum):
    ID = "id"
    NAME = "name"
    ALIAS = "alias"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ChannelLookup:
    via: LookupVia
    channel: Optional[ChannelRow] = None

    @property
    def found(self) -> bool:
        return self.channel is not None


def channel_alias(name: str) -> str:
    return _NON_ALNUM.sub("", name.lower())


def resolve_channel_ref(store: TimelineStore, ref: str) -> ChannelLookup:
    channel = store.find_channel(ref)
    if channel is not None:
        return ChannelLookup(LookupVia.ID, channel)

    channel = store.find_channel_by_name(ref)
    if channel is not None:
        return ChannelLookup(LookupVia.NAME, channel)

    for candidate in store.list_channels():
        if channel_alias(candidate.name) == ref:
            return ChannelLookup(LookupVia.ALIAS, candidate)

    return ChannelLookup(LookupVia.NOT_FOUND)
