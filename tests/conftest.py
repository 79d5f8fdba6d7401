import json
from pathlib import Path

import httpx
import pytest

from aoi_relay.utils.classifier_client import ClassifierClient
from aoi_relay.utils.config import Settings
from domains.inspection_routing.processors.pipeline import ImagePipeline

CLASSIFIER_URL = "http://classifier.test/api_v1/vision_predictor/classifier"


def prediction_body(*scores) -> str:
    """Classifier answer with one prediction entry per score."""
    return json.dumps(
        {
            "predict_result_data": {
                "predict_results": [
                    {"meta": {"predicted_score": score, "label": "scratch"}, "entry": index}
                    for index, score in enumerate(scores)
                ]
            }
        }
    )


class FakeClassifier:
    """Records requests and answers with a canned body."""

    def __init__(self, body: str, status_code: int = 200):
        self.body = body
        self.status_code = status_code
        self.requests: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        return httpx.Response(self.status_code, text=self.body)

    def client(self, settings: Settings) -> ClassifierClient:
        return ClassifierClient(settings, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        input_root=tmp_path / "input",
        output_root=tmp_path / "output",
        classifier_url=CLASSIFIER_URL,
        stability_poll_interval=0.01,
    )


@pytest.fixture
def make_image(settings):
    def _make(name="img1.jpg", date="2024-01-01", serial="SN123", content=b"\xff\xd8jpeg-bytes\xff\xd9") -> Path:
        path = settings.input_root / date / serial / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _make


@pytest.fixture
def make_pipeline(settings):
    pipelines = []

    def _make(classifier: FakeClassifier) -> ImagePipeline:
        pipeline = ImagePipeline(settings, client=classifier.client(settings))
        pipeline.open()
        pipelines.append(pipeline)
        return pipeline

    yield _make

    for pipeline in pipelines:
        pipeline.close()


@pytest.fixture
def read_log(settings):
    def _read() -> list[str]:
        path = settings.activity_log_path
        if not path.exists():
            return []
        return path.read_text(encoding="utf-8").splitlines()

    return _read
