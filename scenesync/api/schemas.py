"""
Pydantic schemas mirroring the rendering engine HTTP/WS contract, plus the
translators from user facing (camelCase) register options into request bodies.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    VIDEO_INPUT_DELIVERED = "VIDEO_INPUT_DELIVERED"
    VIDEO_INPUT_PLAYING = "VIDEO_INPUT_PLAYING"
    VIDEO_INPUT_EOS = "VIDEO_INPUT_EOS"
    AUDIO_INPUT_DELIVERED = "AUDIO_INPUT_DELIVERED"
    AUDIO_INPUT_PLAYING = "AUDIO_INPUT_PLAYING"
    AUDIO_INPUT_EOS = "AUDIO_INPUT_EOS"
    OUTPUT_DONE = "OUTPUT_DONE"


INPUT_EVENT_TYPES = frozenset(
    {
        EventType.VIDEO_INPUT_DELIVERED,
        EventType.VIDEO_INPUT_PLAYING,
        EventType.VIDEO_INPUT_EOS,
        EventType.AUDIO_INPUT_DELIVERED,
        EventType.AUDIO_INPUT_PLAYING,
        EventType.AUDIO_INPUT_EOS,
    }
)


class RawEventModel(BaseModel):
    type: str
    input_id: Optional[str] = None
    output_id: Optional[str] = None
    model_config = ConfigDict(extra="allow")


class RegisterInputResponse(BaseModel):
    video_duration_ms: Optional[float] = None
    audio_duration_ms: Optional[float] = None
    model_config = ConfigDict(extra="allow")


class ImageSpec(BaseModel):
    asset_type: str = Field(alias="assetType")
    url: Optional[str] = None
    server_path: Optional[str] = Field(default=None, alias="serverPath")
    width: Optional[int] = None
    height: Optional[int] = None
    model_config = ConfigDict(populate_by_name=True)


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


# ---------------------------------------------------------------------- inputs


def into_register_input(request: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert user register-input options into the engine request body."""

    input_type = request.get("type")
    if input_type == "mp4":
        return _drop_none(
            {
                "type": "mp4",
                "url": request.get("url"),
                "path": request.get("serverPath"),
                "loop": request.get("loop"),
                "required": request.get("required"),
                "offset_ms": request.get("offsetMs"),
                "video_decoder": request.get("videoDecoder"),
            }
        )
    if input_type == "rtp_stream":
        audio = request.get("audio")
        return _drop_none(
            {
                "type": "rtp_stream",
                "port": request.get("port"),
                "transport_protocol": request.get("transportProtocol"),
                "video": request.get("video"),
                "audio": _into_rtp_input_audio(audio) if audio else None,
                "required": request.get("required"),
                "offset_ms": request.get("offsetMs"),
            }
        )
    if input_type == "whip":
        audio = request.get("audio")
        return _drop_none(
            {
                "type": "whip",
                "video": request.get("video"),
                "audio": (
                    _drop_none(
                        {
                            "decoder": "opus",
                            "forward_error_correction": audio.get("forwardErrorCorrection"),
                        }
                    )
                    if audio
                    else None
                ),
                "required": request.get("required"),
                "offset_ms": request.get("offsetMs"),
            }
        )
    raise ValueError(f"Unknown input type {input_type!r}")


def _into_rtp_input_audio(audio: Mapping[str, Any]) -> Dict[str, Any]:
    decoder = audio.get("decoder")
    if decoder == "opus":
        return _drop_none(
            {"decoder": "opus", "forward_error_correction": audio.get("forwardErrorCorrection")}
        )
    if decoder == "aac":
        return _drop_none(
            {
                "decoder": "aac",
                "audio_specific_config": audio.get("audioSpecificConfig"),
                "rtp_mode": audio.get("rtpMode"),
            }
        )
    raise ValueError(f"Unknown audio decoder type: {decoder!r}")


def into_register_image(request: Mapping[str, Any]) -> Dict[str, Any]:
    spec = ImageSpec.model_validate(dict(request))
    return _drop_none(
        {
            "asset_type": spec.asset_type,
            "url": spec.url,
            "path": spec.server_path,
            "width": spec.width,
            "height": spec.height,
        }
    )


# --------------------------------------------------------------------- outputs


def into_register_output(
    request: Mapping[str, Any],
    initial_video: Optional[Dict[str, Any]],
    initial_audio: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Convert user register-output options into the engine request body, with
    the first scene snapshot embedded as ``initial``.
    """

    output_type = request.get("type")
    video = request.get("video")
    audio = request.get("audio")
    video_body = _into_output_video(video, initial_video) if video and initial_video else None

    if output_type == "rtp_stream":
        body = {
            "type": "rtp_stream",
            "port": request.get("port"),
            "ip": request.get("ip"),
            "transport_protocol": request.get("transportProtocol"),
            "video": video_body,
            "audio": (
                _into_output_audio(
                    audio,
                    initial_audio,
                    {"type": "opus", "preset": "preset", "channels": "channels"},
                )
                if audio and initial_audio
                else None
            ),
        }
    elif output_type == "mp4":
        body = {
            "type": "mp4",
            "path": request.get("serverPath"),
            "video": video_body,
            "audio": (
                _into_output_audio(audio, initial_audio, {"type": "aac", "channels": "channels"})
                if audio and initial_audio
                else None
            ),
        }
    elif output_type == "whip":
        body = {
            "type": "whip",
            "endpoint_url": request.get("endpointUrl"),
            "bearer_token": request.get("bearerToken"),
            "video": video_body,
            "audio": (
                _into_output_audio(audio, initial_audio, {"type": "opus", "channels": "channels"})
                if audio and initial_audio
                else None
            ),
        }
    else:
        raise ValueError(f"Unknown output type {output_type!r}")
    return _drop_none(body)


def _into_output_video(video: Mapping[str, Any], initial: Dict[str, Any]) -> Dict[str, Any]:
    encoder = video.get("encoder") or {}
    send_eos_when = video.get("sendEosWhen")
    return _drop_none(
        {
            "resolution": video.get("resolution"),
            "send_eos_when": into_output_eos_condition(send_eos_when) if send_eos_when else None,
            "encoder": _drop_none(
                {
                    "type": "ffmpeg_h264",
                    "preset": encoder.get("preset"),
                    "ffmpeg_options": encoder.get("ffmpegOptions"),
                }
            ),
            "initial": initial,
        }
    )


def _into_output_audio(
    audio: Mapping[str, Any],
    initial: Dict[str, Any],
    encoder_shape: Mapping[str, str],
) -> Dict[str, Any]:
    encoder = audio.get("encoder") or {}
    encoder_body: Dict[str, Any] = {"type": encoder_shape["type"]}
    for wire_key, user_key in encoder_shape.items():
        if wire_key != "type":
            encoder_body[wire_key] = encoder.get(user_key)
    send_eos_when = audio.get("sendEosWhen")
    return _drop_none(
        {
            "send_eos_when": into_output_eos_condition(send_eos_when) if send_eos_when else None,
            "encoder": _drop_none(encoder_body),
            "initial": initial,
        }
    )


def into_output_eos_condition(condition: Mapping[str, Any]) -> Dict[str, Any]:
    if "anyOf" in condition:
        return {"any_of": condition["anyOf"]}
    if "allOf" in condition:
        return {"all_of": condition["allOf"]}
    if "allInputs" in condition:
        return {"all_inputs": condition["allInputs"]}
    if "anyInput" in condition:
        return {"any_input": condition["anyInput"]}
    raise ValueError('Invalid "send_eos_when" value.')
