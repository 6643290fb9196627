"""End-to-end tests: detection followed by anonymization."""

import asyncio

from pii_engine.anonymization import restore_text
from pii_engine.entities import Entity
from pii_engine.pipeline import DetectionPass, DetectionPipeline, HighRecallPass
from pii_engine.processor import DocumentProcessor, create_default_pipeline

TEXT = "Kontakt: hans@example.com\nBahnhofstrasse 10, 8001 Zürich"


class _FixedPass(DetectionPass):
    name = "Fixed"
    order = 10

    def __init__(self, entities):
        self.entities = entities

    async def execute(self, text, entities, context):
        return entities + [e.copy() for e in self.entities]


def test_default_pipeline_passes(registry):
    names = [p.name for p in create_default_pipeline(registry).get_passes()]
    assert names == ["DocumentType", "HighRecall", "AddressRelationship", "DocumentRules"]


def test_email_and_address_are_replaced(registry):
    processor = DocumentProcessor(create_default_pipeline(registry))
    result = processor.process_sync(TEXT, "kontakt.md")

    assert result.redacted_text == "Kontakt: [EMAIL_1]\n[SWISS_ADDRESS_1]"
    assert [e.token for e in result.mapping.entries] == ["[EMAIL_1]", "[SWISS_ADDRESS_1]"]
    assert result.mapping.addresses[0].components["postal"] == "8001"
    assert restore_text(result.redacted_text, result.mapping) == TEXT
    assert result.to_dict()["mapping"]["filename"] == "kontakt.md"


def test_numbering_restarts_per_document(registry):
    processor = DocumentProcessor(create_default_pipeline(registry))
    processor.process_sync("Mail: anna@example.com", "a.md")
    result = processor.process_sync("Mail: hans@example.com", "b.md")
    assert result.redacted_text == "Mail: [EMAIL_1]"


def test_selection_overrides_flagging():
    text = "Kontakt: Hans Muster, Bern"
    confident = Entity("PERSON", "Hans Muster", 9, 20, 0.9, id="hans")
    doubtful = Entity("LOCATION", "Bern", 22, 26, 0.3, id="bern")
    pipeline = DetectionPipeline()
    pipeline.register_pass(_FixedPass([confident, doubtful]))
    processor = DocumentProcessor(pipeline)

    default = processor.process_sync(text, "a.md")
    assert default.redacted_text == "Kontakt: [PERSON_1], Bern"
    assert default.mapping.statistics.skipped == 1

    override = processor.process_sync(text, "a.md", selection={"hans": False, "bern": True})
    assert override.redacted_text == "Kontakt: Hans Muster, [LOCATION_1]"


def test_normalization_before_detection(registry):
    pipeline = DetectionPipeline()
    pipeline.register_pass(HighRecallPass(registry))
    processor = DocumentProcessor(pipeline, normalize=True)
    result = processor.process_sync("Kontakt:\u00a0hans@example.com\u200b", "a.md")
    assert result.redacted_text == "Kontakt: [EMAIL_1]"


def test_async_process(registry):
    processor = DocumentProcessor(create_default_pipeline(registry), protect_code_blocks=True)
    result = asyncio.run(processor.process("Mail `hans@example.com`", "code.md",
                                           document_id="doc-1", language="de"))
    assert result.redacted_text == "Mail `hans@example.com`"
    assert result.mapping.statistics.anonymized == 0
    assert result.detection.metadata["language"] == "de"


def test_known_frontmatter_end_is_forwarded(registry):
    text = "anna@example.com\nMail: hans@example.com"
    processor = DocumentProcessor(create_default_pipeline(registry))
    result = processor.process_sync(text, "a.md", metadata={"frontmatterEnd": text.index("Mail")})

    assert result.redacted_text == "anna@example.com\nMail: [EMAIL_1]"
    assert result.detection.metadata["frontmatterEnd"] == text.index("Mail")
    assert [e.original for e in result.mapping.entries] == ["hans@example.com"]
