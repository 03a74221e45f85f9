"""Unit tests for TransformationComposer and the built-in transforms."""

from __future__ import annotations

import asyncio

import pytest

from docweave.models.document import TextUnit
from docweave.models.transformation import TransformationConfig
from docweave.services.transformation.builtins import (
    BUILTIN_TRANSFORMS,
    add_document_id,
    clean_text,
    detect_language,
    normalize_unicode,
    normalize_whitespace,
    remove_headers_footers,
)
from docweave.services.transformation.composer import (
    TransformationComposer,
    merge_parallel_outputs,
)
from docweave.utils.errors import UnknownChainError
from docweave.utils.retry import BackoffPolicy


# ---------------------------------------------------------------------------
# Built-ins
# ---------------------------------------------------------------------------


class TestBuiltinTransforms:
    def test_whitespace_normalizer(self, messy_unit: TextUnit) -> None:
        result = normalize_whitespace(messy_unit)

        assert "\t" not in result.content
        assert "\n\n\n" not in result.content
        assert result.content.startswith("Hello world")
        assert result.metadata["whitespace_normalized"] is True
        # Input untouched.
        assert "\t" in messy_unit.content

    def test_unicode_normalizer_folds_typography(self, messy_unit: TextUnit) -> None:
        result = normalize_unicode(messy_unit)

        assert '"Quoted"' in result.content
        assert "-" in result.content and "—" not in result.content
        assert result.content.rstrip().endswith("dash...")

    def test_text_cleaner_collapses_whitespace(self) -> None:
        result = clean_text(TextUnit(content="Hello,   <world>!\n\n#tag"))
        assert result.content == "Hello, world! tag"
        assert result.metadata["cleaned"] is True

    def test_header_footer_remover_drops_repeated_lines(self) -> None:
        pages = "\n".join(f"ACME Corp Confidential\nPage body {i}" for i in range(5))
        result = remove_headers_footers(TextUnit(content=pages))

        assert "ACME Corp Confidential" not in result.content
        assert "Page body 3" in result.content
        assert result.metadata["removed_lines"] == 1

    def test_add_document_id_keeps_existing_id(self) -> None:
        unit = TextUnit(content="x", metadata={"document_id": "keep-me"})
        assert add_document_id(unit).document_id == "keep-me"
        assert str(add_document_id(TextUnit(content="x")).document_id).startswith("doc_")

    def test_language_detector(self) -> None:
        unit = TextUnit(content="The cat is in the house and the dog is in the garden.")
        assert detect_language(unit).metadata["language_code"] == "en"

    def test_every_builtin_is_registered(self, composer: TransformationComposer) -> None:
        registered = {entry["name"] for entry in composer.list_transforms()}
        assert set(BUILTIN_TRANSFORMS) <= registered


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


class TestComposition:
    @pytest.mark.asyncio
    async def test_sequential_chain_applies_in_order(self, composer: TransformationComposer) -> None:
        composer.register("append-a", lambda u: u.with_content(u.content + "a"))
        composer.register("append-b", lambda u: u.with_content(u.content + "b"))

        chain = composer.compose(["append-a", "append-b"])
        result = await chain(TextUnit(content=">"))

        assert result.content == ">ab"

    @pytest.mark.asyncio
    async def test_unknown_names_are_skipped(self, composer: TransformationComposer) -> None:
        chain = composer.compose(["lowercase", "does-not-exist"])
        assert chain.names == ["lowercase"]
        assert (await chain(TextUnit(content="ABC"))).content == "abc"

    def test_all_unknown_names_raise(self, composer: TransformationComposer) -> None:
        with pytest.raises(UnknownChainError):
            composer.compose(["nope", "also-nope"])

    @pytest.mark.asyncio
    async def test_parallel_chain_merges_outputs(self, composer: TransformationComposer) -> None:
        composer.register("tag-one", lambda u: u.with_metadata(tag="one", first=True))
        composer.register("tag-two", lambda u: u.with_metadata(tag="two"))
        composer.register("upper", lambda u: u.with_content(u.content.upper()))

        chain = composer.compose_parallel(["tag-one", "upper", "tag-two"])
        result = await chain(TextUnit(content="abc"))

        assert result.content == "ABC"
        assert result.metadata == {"tag": "two", "first": True}

    @pytest.mark.asyncio
    async def test_async_transforms_are_awaited(self, composer: TransformationComposer) -> None:
        async def shout(unit: TextUnit) -> TextUnit:
            await asyncio.sleep(0)
            return unit.with_content(unit.content + "!")

        composer.register("shout", shout)
        result = await composer.execute(TextUnit(content="hey"), "shout")
        assert result.success
        assert result.transformed.content == "hey!"

    @pytest.mark.asyncio
    async def test_preprocessing_chain_from_config(self, composer: TransformationComposer, messy_unit: TextUnit) -> None:
        chain = composer.create_preprocessing_chain(
            TransformationConfig(remove_extra_whitespace=True, normalize_unicode=True)
        )
        result = await chain(messy_unit)

        assert chain.names == ["whitespace-normalizer", "unicode-normalizer"]
        assert result.metadata["whitespace_normalized"] is True
        assert result.metadata["unicode_normalized"] is True

    @pytest.mark.asyncio
    async def test_empty_config_gives_identity_chain(self, composer: TransformationComposer) -> None:
        unit = TextUnit(content="same", metadata={"k": 1})
        assert await composer.create_enrichment_chain(TransformationConfig())(unit) == unit

    def test_register_chain_makes_it_executable(self, composer: TransformationComposer) -> None:
        composer.register_chain("clean-all", ["whitespace-normalizer", "lowercase"])
        assert composer.has("clean-all")


def test_merge_keeps_original_content_when_nothing_changed() -> None:
    original = TextUnit(content="same", metadata={"a": 1})
    outputs = [original.with_metadata(b=2), original.with_metadata(a=3)]

    merged = merge_parallel_outputs(original, outputs)

    assert merged.content == "same"
    assert merged.metadata == {"a": 3, "b": 2}


# ---------------------------------------------------------------------------
# Execution guarantees
# ---------------------------------------------------------------------------


class TestExecute:
    @pytest.mark.asyncio
    async def test_unknown_chain_returns_failure(self, composer: TransformationComposer) -> None:
        unit = TextUnit(content="input")
        result = await composer.execute(unit, "missing-chain")

        assert result.success is False
        assert result.transformed == unit
        assert "missing-chain" in (result.error or "")

    @pytest.mark.asyncio
    async def test_failure_preserves_input(self, composer: TransformationComposer) -> None:
        def explode(unit: TextUnit) -> TextUnit:
            raise RuntimeError("boom")

        composer.register("explode", explode)
        unit = TextUnit(content="keep me")
        result = await composer.execute(unit, "explode", retries=3)

        assert result.success is False
        assert result.error == "boom"
        assert result.transformed is unit

    @pytest.mark.asyncio
    async def test_retries_until_success(self, composer: TransformationComposer) -> None:
        calls = {"n": 0}

        def flaky(unit: TextUnit) -> TextUnit:
            calls["n"] += 1
            if calls["n"] < 3:
                raise RuntimeError("transient")
            return unit.with_metadata(attempts=calls["n"])

        composer.register("flaky", flaky)
        result = await composer.execute(TextUnit(content="x"), "flaky", retries=3)

        assert result.success
        assert result.transformed.metadata["attempts"] == 3

    @pytest.mark.asyncio
    async def test_timeout_releases_operation(self) -> None:
        composer = TransformationComposer(backoff=BackoffPolicy(base_delay=0.0, jitter=0.0))
        cancelled = asyncio.Event()

        async def slow(unit: TextUnit) -> TextUnit:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return unit

        composer.register("slow", slow)
        result = await composer.execute(TextUnit(content="x"), "slow", timeout=0.05)

        assert result.success is False
        assert "timed out" in (result.error or "").lower()
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_non_unit_return_is_a_failure(self, composer: TransformationComposer) -> None:
        composer.register("bad", lambda unit: "not a unit")
        result = await composer.execute(TextUnit(content="x"), "bad")

        assert result.success is False
        assert "expected TextUnit" in (result.error or "")

    @pytest.mark.asyncio
    async def test_execute_batch_preserves_order(
        self, composer: TransformationComposer, sample_units: list[TextUnit]
    ) -> None:
        results = await composer.execute_batch(sample_units, "whitespace-normalizer", batch_size=2)

        assert [r.original for r in results] == sample_units
        assert all(r.success for r in results)
        assert all("  " not in r.transformed.content for r in results)
