"""Pydantic models describing the subset of the AbletonOSC API setwave talks to."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class ParamSpec(BaseModel):
    name: str
    type: Literal["int", "float", "str", "bool", "any"]
    description: str = ""
    optional: bool = False


class EndpointSpec(BaseModel):
    address: str  # "/live/song/get/cue_points"
    domain: str  # "song"
    kind: Literal["method", "get", "listen_start", "listen_stop", "custom"]
    params: list[ParamSpec] = []
    returns: list[ParamSpec] = []
    description: str = ""
    extension: bool = False  # served by the setwave remote-script extension


class DomainSpec(BaseModel):
    name: str  # "track"
    description: str
    base_address: str  # "/live/track"
    index_params: list[ParamSpec] = []
    endpoints: list[EndpointSpec]

    def addresses(self) -> set[str]:
        return {ep.address for ep in self.endpoints}


class AbletonOSCSpec(BaseModel):
    version: str = "1.0"
    source: str = "AbletonOSC"
    domains: list[DomainSpec]

    def domain(self, name: str) -> DomainSpec:
        for d in self.domains:
            if d.name == name:
                return d
        raise KeyError(f"Unknown domain: {name!r}")

    def addresses(self) -> set[str]:
        return set().union(*(d.addresses() for d in self.domains))

    def extension_endpoints(self) -> list[EndpointSpec]:
        return [ep for d in self.domains for ep in d.endpoints if ep.extension]
