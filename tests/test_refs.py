import pytest

from scenesync.errors import RefParseError
from scenesync.refs import GlobalRef, ScopedRef, decode_ref, encode_ref


def test_encode_global_and_scoped() -> None:
    assert encode_ref(GlobalRef(id="camera")) == "global:camera"
    assert encode_ref(ScopedRef(output_id="main", id=7)) == "scoped:7:main"


def test_decode_restores_reference() -> None:
    assert decode_ref("global:camera") == GlobalRef(id="camera")
    assert decode_ref("scoped:7:main") == ScopedRef(output_id="main", id=7)


def test_colons_belong_to_trailing_id() -> None:
    assert decode_ref("global:rtmp:cam") == GlobalRef(id="rtmp:cam")
    ref = decode_ref(encode_ref(ScopedRef(output_id="out:1", id=3)))
    assert ref == ScopedRef(output_id="out:1", id=3)
    assert ref.type == "scoped"


@pytest.mark.parametrize(
    "raw",
    [
        "global",
        "",
        "nope:1",
        "scoped:1",
        "scoped:abc:out",
        "scoped:1_0:out",
        "scoped: 7:out",
        "scoped:+3:out",
        "scoped:07:out",
        "scoped::out",
    ],
)
def test_decode_rejects_malformed(raw: str) -> None:
    with pytest.raises(RefParseError):
        decode_ref(raw)


def test_refs_are_hashable_keys() -> None:
    volumes = {GlobalRef(id="a"): 1.0, ScopedRef(output_id="o", id=1): 0.5}
    assert volumes[GlobalRef(id="a")] == 1.0
    assert volumes[ScopedRef(output_id="o", id=1)] == 0.5
