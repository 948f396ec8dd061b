import json

import pytest

from recflow_core import FileNotFound
from recflow_core.config import FlowConfig, default_config, load_config, load_config_file, set_default_config


def test_defaults():
    config = load_config(environ={})
    assert config == FlowConfig()
    assert config.verify_write is False
    assert config.write_attempts == 3
    assert config.codec == "msgpack"


def test_file_then_env_then_overrides(tmp_path):
    path = tmp_path / "recflow.toml"
    path.write_text('[recflow]\nverify_write = true\nwrite_attempts = 5\ncodec = "json"\n')

    assert load_config(path, environ={}) == FlowConfig(True, 5, "json")
    env = {"RECFLOW_WRITE_ATTEMPTS": "7", "RECFLOW_VERIFY_WRITE": "off"}
    assert load_config(path, environ=env) == FlowConfig(False, 7, "json")
    assert load_config(path, environ=env, codec="msgpack", write_attempts=None).codec == "msgpack"


def test_json_file_without_table(tmp_path):
    path = tmp_path / "recflow.json"
    path.write_text(json.dumps({"write_attempts": 2, "unknown": 1}))
    assert load_config_file(path) == {"write_attempts": 2, "unknown": 1}
    assert load_config(path, environ={}).write_attempts == 2


def test_bad_inputs(tmp_path):
    with pytest.raises(FileNotFound):
        load_config_file(tmp_path / "absent.toml")
    yaml = tmp_path / "recflow.yaml"
    yaml.write_text("codec: json\n")
    with pytest.raises(ValueError):
        load_config_file(yaml)
    with pytest.raises(ValueError):
        load_config(environ={"RECFLOW_VERIFY_WRITE": "maybe"})
    with pytest.raises(ValueError):
        load_config(environ={"RECFLOW_WRITE_ATTEMPTS": "0"})


def test_default_config_is_replaceable():
    try:
        set_default_config(FlowConfig(codec="json"))
        assert default_config().codec == "json"
    finally:
        set_default_config(None)
    assert default_config() is default_config()
