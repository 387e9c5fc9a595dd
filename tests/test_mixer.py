import pytest

from fakes import SceneChanges
from scenesync.mixer import AudioMixerContext
from scenesync.refs import GlobalRef, ScopedRef
from scenesync.scene import into_audio_inputs_configuration


def test_volumes_sum_and_clip() -> None:
    mixer = AudioMixerContext()
    ref = GlobalRef(id="music")

    first = mixer.add_input_audio_component(ref, 0.6)
    second = mixer.add_input_audio_component(ref, 0.7)
    assert mixer.volume_for(ref) == 1.0

    mixer.remove_input_audio_component(ref, second)
    assert mixer.volume_for(ref) == pytest.approx(0.6)

    mixer.remove_input_audio_component(ref, first)
    assert mixer.volume_for(ref) == 0.0
    assert mixer.get_audio_config() == []


def test_equal_contributions_are_distinct() -> None:
    mixer = AudioMixerContext()
    ref = GlobalRef(id="voice")
    first = mixer.add_input_audio_component(ref, 0.3)
    mixer.add_input_audio_component(ref, 0.3)

    mixer.remove_input_audio_component(ref, first)
    assert mixer.volume_for(ref) == pytest.approx(0.3)


def test_every_change_notifies() -> None:
    changes = SceneChanges()
    mixer = AudioMixerContext(on_change=changes)
    ref = ScopedRef(output_id="out", id=1)

    contribution = mixer.add_input_audio_component(ref, 0.5)
    mixer.remove_input_audio_component(ref, contribution)
    assert changes.count == 2


def test_unknown_contribution_is_ignored(caplog: pytest.LogCaptureFixture) -> None:
    changes = SceneChanges()
    mixer = AudioMixerContext(on_change=changes)
    other = AudioMixerContext().add_input_audio_component(GlobalRef(id="a"))

    mixer.remove_input_audio_component(GlobalRef(id="a"), other)
    assert changes.count == 0
    assert "unknown audio contribution" in caplog.text


def test_audio_configuration_body() -> None:
    mixer = AudioMixerContext()
    mixer.add_input_audio_component(GlobalRef(id="a"), 0.25)
    mixer.add_input_audio_component(ScopedRef(output_id="out", id=2), 1.0)

    body = into_audio_inputs_configuration(mixer.get_audio_config())
    assert body == {
        "inputs": [
            {"input_id": "global:a", "volume": 0.25},
            {"input_id": "scoped:2:out", "volume": 1.0},
        ]
    }
