import pytest
from pydantic import ValidationError
from msync.config.models import AppConfig, FormatProfile, GeneralConfig, ScanConfig, TranscodeConfig

def test_default_config():
    config = AppConfig()
    assert config.general.threads >= 4
    assert config.general.progress_every == 10
    assert config.scan.lossless_extensions == [".flac"]
    assert config.scan.index_filename == "index.json"
    assert config.transcode.cover_filename == "cover.jpg"
    assert config.transcode.prune_covers is False
    assert set(config.transcode.formats) == {"opus", "mp3", "aac"}
    assert config.transcode.transcoded_extensions == [".m4a", ".mp3", ".opus"]

def test_general_config_validation():
    with pytest.raises(ValidationError):
        GeneralConfig(threads=0)
    with pytest.raises(ValidationError):
        GeneralConfig(progress_every=0)

def test_scan_extensions_are_normalized():
    config = ScanConfig(audio_extensions=["FLAC", ".Mp3", "  "], lossless_extensions=["wav"])
    assert config.audio_extensions == [".flac", ".mp3"]
    assert config.lossless_extensions == [".wav"]

def test_scan_extensions_must_not_be_empty():
    with pytest.raises(ValidationError):
        ScanConfig(lossless_extensions=[])

def test_format_profile_requires_placeholders():
    with pytest.raises(ValidationError, match="source"):
        FormatProfile(extension="ogg", command=["oggenc", "-o", "{output}"])
    with pytest.raises(ValidationError):
        FormatProfile(extension="ogg", command=[])

    profile = FormatProfile(extension="OGG", command=["oggenc", "{source}", "-o", "{output}"])
    assert profile.extension == ".ogg"
    assert profile.copy_tags is False

def test_transcode_formats_need_distinct_extensions():
    command = ["enc", "{source}", "{output}"]
    with pytest.raises(ValidationError, match="distinct"):
        TranscodeConfig(formats={
            "a": FormatProfile(extension=".opus", command=command),
            "b": FormatProfile(extension="opus", command=command),
        })
    with pytest.raises(ValidationError):
        TranscodeConfig(formats={})
