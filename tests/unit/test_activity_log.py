import re
import threading

from aoi_relay.models.schemas import Category, ImageCandidate
from domains.inspection_routing.processors.activity_log import ActivityLog

LINE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{3} \| (INFO|SUCCESS|ERROR) +\| .+$")


def candidate(tmp_path, name="img1.jpg"):
    return ImageCandidate(path=tmp_path / "2024-01-01" / "SN123" / name, date="2024-01-01", serial="SN123")


def test_lifecycle_lines(tmp_path):
    log_path = tmp_path / "output" / "log.txt"
    image = candidate(tmp_path)

    with ActivityLog(log_path) as activity:
        activity.started(image)
        activity.classified(image)
        activity.routed(image, Category.FAIL, tmp_path / "FAIL" / "img1_result.json")
        activity.failed(image, RuntimeError("first line\nsecond line"))

    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 4
    assert all(LINE.match(line) for line in lines)
    assert "Processing new image" in lines[0]
    assert "SUCCESS" in lines[1]
    assert "routed to FAIL" in lines[2]
    assert lines[3].endswith("first line second line")


def test_other_loguru_records_stay_out(tmp_path):
    from loguru import logger

    log_path = tmp_path / "log.txt"
    with ActivityLog(log_path) as activity:
        logger.info("unrelated operational message")
        activity.started(candidate(tmp_path))

    assert "unrelated" not in log_path.read_text(encoding="utf-8")


def test_appends_across_sessions(tmp_path):
    log_path = tmp_path / "log.txt"

    with ActivityLog(log_path) as activity:
        activity.started(candidate(tmp_path, "a.jpg"))
    with ActivityLog(log_path) as activity:
        activity.started(candidate(tmp_path, "b.jpg"))

    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert [line.rsplit("/", 1)[-1] for line in lines] == ["a.jpg", "b.jpg"]


def test_concurrent_writers_never_interleave(tmp_path):
    log_path = tmp_path / "log.txt"
    images = [candidate(tmp_path, f"img{n}.jpg") for n in range(8)]

    with ActivityLog(log_path) as activity:
        def worker(image):
            for _ in range(50):
                activity.started(image)
                activity.routed(image, Category.PASS, image.path.with_name("x" * 200))

        threads = [threading.Thread(target=worker, args=(image,)) for image in images]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 8 * 50 * 2
    assert all(LINE.match(line) for line in lines)
