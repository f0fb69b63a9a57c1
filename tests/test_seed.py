import pytest

from node_preparer.lib.kv import MemoryKV
from node_preparer.seed import intent_writes, load_intent_document, seed_intent

DOC = {
    "nodes": {"testhost": {"testapp": {"cluster": "test"}}},
    "clusters": {
        "testapp": {
            "test": {
                "versions": {"abc123": "active"},
                "deploy_config": {"basedir": "/tmp/slug"},
            }
        }
    },
}


def test_intent_writes_flattens_layout():
    assert intent_writes(DOC) == [
        ("nodes/testhost/testapp", {"cluster": "test"}),
        ("clusters/testapp/test/versions", {"abc123": "active"}),
        ("clusters/testapp/test/deploy_config", {"basedir": "/tmp/slug"}),
    ]


@pytest.mark.parametrize(
    "doc",
    [
        {"node": {}},
        {"nodes": ["testhost"]},
        {"nodes": {"testhost": "testapp"}},
        {"clusters": {"testapp": {"test": {"version": {}}}}},
    ],
)
def test_intent_writes_rejects_malformed_documents(doc):
    with pytest.raises(ValueError):
        intent_writes(doc)


def test_replace_only_touches_named_trees():
    kv = MemoryKV(
        {
            "nodes/testhost/gone": {"cluster": "x"},
            "nodes/otherhost/kept": {"cluster": "x"},
            "clusters/testapp/old/versions": {"v0": "active"},
        }
    )

    assert seed_intent(kv, DOC, replace=True) == 3

    assert kv.list("nodes/testhost") == {"testapp": {"cluster": "test"}}
    assert kv.list("nodes/otherhost") == {"kept": {"cluster": "x"}}
    assert kv.get("clusters/testapp/old/versions") is None


def test_invalid_document_leaves_store_untouched():
    kv = MemoryKV({"nodes/testhost/old": {"cluster": "x"}})
    doc = dict(DOC, clusters={"testapp": {"test": {"bogus": 1}}})

    with pytest.raises(ValueError):
        seed_intent(kv, doc, replace=True)

    assert kv.list("nodes/testhost") == {"old": {"cluster": "x"}}


def test_load_intent_document_rejects_bad_yaml(tmp_path):
    p = tmp_path / "intent.yaml"
    p.write_text("nodes: [unclosed\n")
    with pytest.raises(ValueError):
        load_intent_document(str(p))

    p.write_text("- a\n")
    with pytest.raises(ValueError):
        load_intent_document(str(p))
