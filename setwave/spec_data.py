"""AbletonOSC endpoints used by setwave, across the song, track and
arrangement_clip domains plus the internal connectivity check.

Listeners follow the AbletonOSC convention: ``start_listen/<prop>`` makes
Live push ``get/<prop>`` replies whenever the property changes.

Stock AbletonOSC lists arrangement clips by name, start time and length and
exposes each clip's start marker. Everything flagged ``extension=True`` (mute
flags, file paths, warp markers and the clip-list, cue point and track-name
listeners) comes from the setwave remote-script extension described in the
README; ``setwave check`` reports which of them go unanswered.
"""

from .spec import AbletonOSCSpec, DomainSpec, EndpointSpec, ParamSpec


# =============================================================================
# Helpers
# =============================================================================


def _p(
    name: str, type: str = "any", description: str = "", optional: bool = False
) -> ParamSpec:
    return ParamSpec(name=name, type=type, description=description, optional=optional)


_track = _p("track_id", "int", "Track index")
_ac = _p("clip_id", "int", "Arrangement clip index")


def _get_ep(
    domain: str,
    prop: str,
    ptype: str = "any",
    idx: list[ParamSpec] | None = None,
    desc: str = "",
    extension: bool = False,
) -> EndpointSpec:
    ix = list(idx) if idx else []
    return EndpointSpec(
        address=f"/live/{domain}/get/{prop}",
        domain=domain,
        kind="get",
        params=ix,
        returns=ix + [_p(prop, ptype)],
        description=desc or f"Get {prop}",
        extension=extension,
    )


def _listen_eps(
    domain: str,
    prop: str,
    ptype: str = "any",
    idx: list[ParamSpec] | None = None,
    desc: str = "",
    extension: bool = False,
) -> list[EndpointSpec]:
    """Generate get + start/stop listen endpoints for an observable property.

    extension flags the start/stop endpoints only; the get side may be stock.
    """
    ix = list(idx) if idx else []
    return [
        _get_ep(domain, prop, ptype, idx=idx, desc=desc),
        EndpointSpec(
            address=f"/live/{domain}/start_listen/{prop}",
            domain=domain,
            kind="listen_start",
            params=ix,
            description=f"Listen to {prop} changes",
            extension=extension,
        ),
        EndpointSpec(
            address=f"/live/{domain}/stop_listen/{prop}",
            domain=domain,
            kind="listen_stop",
            params=ix,
            description=f"Stop listening to {prop}",
            extension=extension,
        ),
    ]


# =============================================================================
# Song domain
# =============================================================================

song_domain = DomainSpec(
    name="song",
    description="Transport position, track list and cue points",
    base_address="/live/song",
    endpoints=(
        _listen_eps("song", "current_song_time", "float", desc="Playhead in beats")
        + _listen_eps(
            "song",
            "cue_points",
            desc="All cue points as alternating name, time pairs",
            extension=True,
        )
        + _listen_eps(
            "song", "track_names", "str", desc="Names of all tracks", extension=True
        )
    ),
)


# =============================================================================
# Track domain
# =============================================================================

_track_idx = [_track]

track_domain = DomainSpec(
    name="track",
    description="Per-track arrangement clip listings",
    base_address="/live/track",
    index_params=_track_idx,
    endpoints=(
        _listen_eps(
            "track",
            "arrangement_clips",
            idx=_track_idx,
            desc="Arrangement clip list notification",
            extension=True,
        )
        + [
            _get_ep(
                "track",
                "arrangement_clips/name",
                "str",
                idx=_track_idx,
                desc="Arrangement clip names",
            ),
            _get_ep(
                "track",
                "arrangement_clips/start_time",
                "float",
                idx=_track_idx,
                desc="Arrangement clip start times (beats)",
            ),
            _get_ep(
                "track",
                "arrangement_clips/length",
                "float",
                idx=_track_idx,
                desc="Arrangement clip lengths (beats)",
            ),
            _get_ep(
                "track",
                "arrangement_clips/muted",
                "bool",
                idx=_track_idx,
                desc="Arrangement clip mute flags",
                extension=True,
            ),
        ]
    ),
)


# =============================================================================
# Arrangement clip domain
# =============================================================================

_ac_idx = [_track, _ac]

arrangement_clip_domain = DomainSpec(
    name="arrangement_clip",
    description="Audio properties of a single arrangement clip",
    base_address="/live/arrangement_clip",
    index_params=_ac_idx,
    endpoints=[
        _get_ep(
            "arrangement_clip", "file_path", "str", idx=_ac_idx, extension=True
        ),
        _get_ep("arrangement_clip", "start_marker", "float", idx=_ac_idx),
        _get_ep(
            "arrangement_clip",
            "warp_markers",
            idx=_ac_idx,
            desc="Flattened beat_time, sample_time pairs",
            extension=True,
        ),
    ],
)


# =============================================================================
# Internal
# =============================================================================

internal_domain = DomainSpec(
    name="internal",
    description="Connectivity check",
    base_address="/live",
    endpoints=[
        EndpointSpec(
            address="/live/test",
            domain="internal",
            kind="method",
            description="Test connectivity (replies 'ok')",
        ),
    ],
)


# =============================================================================
# Assembled spec
# =============================================================================

spec = AbletonOSCSpec(
    version="1.0",
    source="AbletonOSC",
    domains=[
        song_domain,
        track_domain,
        arrangement_clip_domain,
        internal_domain,
    ],
)
