import os
import pytest
from core.config import Settings, BASE_DIR

@pytest.fixture
def clean_env():
    """Restore os.environ after the test."""
    old_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(old_env)

def test_defaults():
    s = Settings(_env_file=None)
    assert s.tube_inventory == "diatonic"
    assert s.fold_octaves is True
    assert s.copies_per_tube == 1
    assert s.conflict_policy == "fail"
    assert s.performer_packing == "span"
    assert s.switch_gap_beats == 0.0
    assert s.page_size == "A4"
    assert s.part_label == "Performer"

def test_alias_choices(clean_env):
    """Both COPIES_PER_TUBE and TUBE_COPIES set the copy count."""
    # _env_file=None so a developer's .env cannot shadow os.environ
    os.environ["TUBE_COPIES"] = "3"
    s1 = Settings(_env_file=None)
    assert s1.copies_per_tube == 3

    del os.environ["TUBE_COPIES"]

    os.environ["COPIES_PER_TUBE"] = "2"
    s2 = Settings(_env_file=None)
    assert s2.copies_per_tube == 2

def test_env_policy_and_packing(clean_env):
    os.environ["CONFLICT_POLICY"] = "flag"
    os.environ["PERFORMER_PACKING"] = "note"
    os.environ["FOLD_OCTAVES"] = "false"
    s = Settings(_env_file=None)
    assert s.conflict_policy == "flag"
    assert s.performer_packing == "note"
    assert s.fold_octaves is False

def test_sanity_clamps():
    s = Settings(COPIES_PER_TUBE=0, SWITCH_GAP_BEATS=-1.5, RESOLVER_WORKERS=0, PART_LABEL="  ", _env_file=None)
    assert s.copies_per_tube == 1
    assert s.switch_gap_beats == 0.0
    assert s.resolver_workers == 1
    assert s.part_label == "Performer"

def test_invalid_choice_rejected():
    with pytest.raises(ValueError):
        Settings(CONFLICT_POLICY="ignore", _env_file=None)
    with pytest.raises(ValueError):
        Settings(TUBE_INVENTORY="pentatonic", _env_file=None)

def test_path_normalization():
    """Relative paths resolve against the project root."""
    s = Settings(OUTPUT_DIR="my_parts", _env_file=None)
    assert s.output_dir.is_absolute()
    assert s.output_dir == (BASE_DIR / "my_parts").resolve()

def test_cors_origins_and_env_flags():
    s = Settings(APP_ENV="Production", CORS_ALLOW_ORIGINS=" https://a.example ,,https://b.example", _env_file=None)
    assert s.is_development is False
    assert s.cors_origins == ["https://a.example", "https://b.example"]
    assert Settings(APP_ENV="local", _env_file=None).is_development is True

def test_midi_grid_default_and_clamp():
    assert Settings(_env_file=None).midi_grid_div == 4
    assert Settings(MIDI_GRID_DIV=-2, _env_file=None).midi_grid_div == 0
