import pytest

from signature_middleware import (
    BUILTIN_SIGNATURES,
    Signature,
    SignatureError,
    SignatureRegistry,
    load_signature_file,
    match,
)


def test_builtin_table_order_and_uniqueness():
    services = [s.service for s in BUILTIN_SIGNATURES]
    assert services[0] == "AWS S3"
    assert services[1] == "GitHub Pages"
    assert len(services) == len(set(services))
    for sig in BUILTIN_SIGNATURES:
        assert sig.cnames
        assert sig.confidence in ("high", "medium", "low")
        assert not sig.cname_only


def test_builtin_patterns_compile():
    for sig in BUILTIN_SIGNATURES:
        assert sig.body_rx is not None


def test_invalid_regex_fails_fast():
    with pytest.raises(SignatureError) as exc:
        Signature(service="Broken", cnames=(".broken.net",), body_match="(unclosed")
    assert "Broken" in str(exc.value)


def test_unknown_confidence_rejected():
    with pytest.raises(SignatureError):
        Signature(service="X", cnames=(".x.net",), status_code=404, confidence="certain")


def test_cname_only_signature_is_allowed():
    sig = Signature(service="Bare", cnames=(".bare.net",))
    assert sig.cname_only
    assert len(SignatureRegistry([sig])) == 1


def test_match_s3():
    registry = SignatureRegistry.load()
    found = match("foo.s3.amazonaws.com", registry)
    assert [s.service for s in found] == ["AWS S3"]


def test_match_keeps_registry_order():
    registry = SignatureRegistry.load()
    found = registry.match("edge.s3.fastly.net.")
    assert [s.service for s in found] == ["AWS S3", "Fastly"]


def test_match_is_case_sensitive():
    registry = SignatureRegistry.load()
    assert match("bar.GitHub.IO", registry) == []
    assert [s.service for s in match("bar.github.io", registry)] == ["GitHub Pages"]


def test_trailing_dot_does_not_matter_for_substrings():
    registry = SignatureRegistry.load()
    assert [s.service for s in match("bar.github.io.", registry)] == ["GitHub Pages"]


def test_match_is_idempotent():
    registry = SignatureRegistry.load()
    first = match("x.herokudns.com", registry)
    second = match("x.herokudns.com", registry)
    assert first == second
    assert [s.service for s in first] == ["Heroku"]


def test_no_match_and_empty_inputs():
    registry = SignatureRegistry.load()
    assert match("www.example.com", registry) == []
    assert match("", registry) == []
    assert match(None, registry) == []
    assert match("foo.s3.amazonaws.com", SignatureRegistry()) == []


def test_custom_signature_file_appended(tmp_path):
    path = tmp_path / "extra.yaml"
    path.write_text(
        "- service: Example Host\n"
        "  cnames: ['.examplehost.net']\n"
        "  status_code: 410\n"
        "  body_match: 'Site gone'\n"
        "  confidence: low\n"
    )
    registry = SignatureRegistry.load([str(path)])
    assert len(registry) == len(BUILTIN_SIGNATURES) + 1
    last = registry.signatures[-1]
    assert last.service == "Example Host"
    assert last.cnames == (".examplehost.net",)
    assert last.status_code == 410
    assert last.confidence == "low"
    assert [s.service for s in registry.match("a.examplehost.net")] == ["Example Host"]


def test_custom_signature_mapping_form(tmp_path):
    path = tmp_path / "extra.yaml"
    path.write_text("signatures:\n  - service: Solo\n    cnames: .solo.io\n    status_code: 404\n")
    sigs = load_signature_file(str(path))
    assert sigs[0].cnames == (".solo.io",)


def test_custom_signature_bad_regex_names_entry(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text(
        "- service: Good\n"
        "  cnames: ['.good.net']\n"
        "  status_code: 404\n"
        "- service: Bad\n"
        "  cnames: ['.bad.net']\n"
        "  body_match: '[oops'\n"
    )
    with pytest.raises(SignatureError) as exc:
        SignatureRegistry.load([str(path)])
    msg = str(exc.value)
    assert "[1]" in msg
    assert "Bad" in msg


@pytest.mark.parametrize("body", [
    "- cnames: ['.x.net']\n",
    "- service: NoCnames\n  cnames: []\n",
    "- service: BadStatus\n  cnames: ['.x.net']\n  status_code: '404'\n",
    "- just a string\n",
    "service: not-a-list\n",
])
def test_custom_signature_validation(tmp_path, body):
    path = tmp_path / "bad.yaml"
    path.write_text(body)
    with pytest.raises(SignatureError):
        load_signature_file(str(path))


def test_missing_signature_file(tmp_path):
    with pytest.raises(SignatureError):
        SignatureRegistry.load([str(tmp_path / "nope.yaml")])
