"""
Integration tests for the classifier against the real LLM endpoint.
Skipped unless LLM_API_KEY is configured.

Run with: pytest tests/test_classifier_integration.py -v -s
"""
import pytest

from helpers import make_article, make_org, make_pending
from newsradar.classifier import ClassifierService
from newsradar.config import settings
from newsradar.models import ClassificationStatus, Verdict

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not settings.llm_api_key, reason="LLM_API_KEY not configured"),
]

SAMPLE_ARTICLES = [
    ("Dock workers at Rotterdam announce indefinite strike", "Container handling halted at Europe's largest port."),
    ("EU approves subsidies for regional freight rail", "A new fund covers 40% of rail terminal investments."),
    ("Local bakery wins regional bread award", "The bakery's sourdough was praised by the jury."),
]


class TestClassifierLLMIntegration:
    def test_verdicts_are_stored(self, db, capsys):
        org = make_org(db, "Acme", company_context="Acme runs road and sea freight between Rotterdam and Germany.")
        service = ClassifierService()

        records = []
        for title, summary in SAMPLE_ARTICLES:
            records.append(make_pending(db, make_article(db, title=title, summary=summary), org))

        with capsys.disabled():
            print()
            for record in records:
                service.classify(db, record)
                print(f"  {record.classification:<12} {record.criti_score!s:>4}  {record.article.title}")

        for record in records:
            assert record.status == ClassificationStatus.CLASSIFIED
            assert record.classification in {v.value for v in Verdict if v is not Verdict.UNRESOLVED}
