from pathlib import Path
import sys

here = Path(__file__).resolve()
builder_dir = here.parent
if str(builder_dir) not in sys.path:
    sys.path.insert(0, str(builder_dir))

from conftest import write_mod
from mod_classifier import ModClassification, Platform, Support, classify_mods
from mod_index import DownloadMode, ModDescriptor, ModSide, read_mod_index
from mod_rules import ModRules, apply_rules


def classification(filename: str, client=Support.REQUIRED, server=Support.REQUIRED, enabled=True):
    d = ModDescriptor(
        filename=filename, name=filename, version="1", side=ModSide.BOTH,
        download_mode=DownloadMode.NONE, path=Path(filename), disabled=not enabled,
        file_size=1, last_modified="",
    )
    return ModClassification(descriptor=d, client=client, server=server, enabled=enabled)


def test_ignore_drops_enabled_and_keeps_disabled_optional():
    rules = ModRules(ignore=[r"^oculus"])
    out = apply_rules(
        [classification("oculus-1.6.jar"), classification("Oculus-old.jar", Support.OPTIONAL, Support.OPTIONAL, enabled=False)],
        rules, Platform.CLIENT,
    )
    assert out[0].client == Support.UNSUPPORTED
    assert out[1].client == Support.OPTIONAL
    # other platform untouched
    assert out[0].server == Support.REQUIRED


def test_ensure_forces_support():
    rules = ModRules(ensure=[r"jei"])
    c = classification("jei-19.jar", client=Support.UNSUPPORTED)
    assert apply_rules([c], rules, Platform.CLIENT)[0].client == Support.REQUIRED
    disabled = classification("jei-19.jar", client=Support.UNSUPPORTED, enabled=False)
    assert apply_rules([disabled], rules, Platform.CLIENT)[0].client == Support.OPTIONAL


def test_ensure_optional_marks_optional():
    rules = ModRules(ensure_optional=[r"shader"])
    out = apply_rules([classification("shaderpack-helper.jar")], rules, Platform.SERVER)
    assert out[0].server == Support.OPTIONAL


def test_overlap_outcome_independent_of_list_order(caplog):
    c = classification("sodium-extra.jar")
    a = apply_rules([c], ModRules(ensure=[r"sodium"], ignore=[r"extra"]), Platform.CLIENT)
    b = apply_rules([c], ModRules(ignore=[r"extra"], ensure=[r"sodium"]), Platform.CLIENT)
    assert a[0].client == b[0].client == Support.REQUIRED
    assert "takes precedence" in caplog.text


def test_overlap_rule_application_order_does_not_matter():
    c = classification("sodium-extra.jar")
    ignore_first = ModRules(ignore=[r"extra"], ensure=[r"sodium"], ensure_optional=[r"sodium-extra"])
    ensure_first = ModRules(ensure_optional=[r"sodium-extra"], ensure=[r"sodium"], ignore=[r"extra"])
    assert apply_rules([c], ignore_first, Platform.CLIENT)[0].client == Support.OPTIONAL
    assert apply_rules([c], ensure_first, Platform.CLIENT)[0].client == Support.OPTIONAL


def test_inputs_are_not_mutated_and_unmatched_pass_through():
    original = classification("create.jar")
    out = apply_rules([original], ModRules(ignore=[r"create"]), Platform.CLIENT)
    assert original.client == Support.REQUIRED
    assert out[0].client == Support.UNSUPPORTED
    untouched = apply_rules([original], ModRules(ignore=[r"nomatch"]), Platform.CLIENT)
    assert untouched[0] is original


def test_matching_is_case_insensitive():
    rules = ModRules(ignore=[r"xaero"])
    assert rules.matches("Xaeros_Minimap.jar") == ["ignore"]


def test_patterns_see_the_normalized_filename(tmp_path: Path):
    write_mod(tmp_path, "sodium.jar", side="client", url="https://cdn.example/sodium.jar", disabled=True)
    classifications = classify_mods(read_mod_index(tmp_path), resolve=False)
    assert classifications[0].descriptor.disk_name == "sodium.jar.disabled"

    rules = ModRules(ignore=[r"\.disabled$"])
    assert rules.matches(classifications[0].filename) == []
    assert apply_rules(classifications, rules, Platform.CLIENT) == classifications
