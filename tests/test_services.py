import json

import pytest

from app.domain import services
from app.domain.errors import RecognitionFailure, SchemaViolation
from app.domain.models import BoundingBox, Confidence, DetectionSet, HistoryEntry, EncodedImage, PlateDetection

BOX = {"ymin": 100, "xmin": 200, "ymax": 200, "xmax": 600}


def _plate(number="KA01AB1234", confidence="high", box=None, **extra):
    item = {"plateNumber": number, "confidence": confidence, "plateBoundingBox": box or dict(BOX)}
    item.update(extra)
    return item


def test_invalid_element_is_dropped_valid_one_kept():
    missing_number = {"confidence": "high", "plateBoundingBox": dict(BOX)}
    result = services.parse_detection_payload({"plates": [missing_number, _plate("MH12XY9999")]})

    assert [p.plate_number for p in result.plates] == ["MH12XY9999"]


def test_all_invalid_elements_yield_empty_set():
    payload = {
        "plates": [
            {"confidence": "high", "plateBoundingBox": dict(BOX)},
            _plate(box={"ymin": 300, "xmin": 0, "ymax": 100, "xmax": 10}),
            _plate(box={"ymin": 0, "xmin": 0, "ymax": 10, "xmax": 1001}),
            _plate(number="   "),
            {"plateNumber": "AB123", "plateBoundingBox": dict(BOX)},
            "not-an-object",
        ]
    }

    result = services.parse_detection_payload(payload)

    assert isinstance(result, DetectionSet)
    assert result.is_empty


def test_zero_plates_is_a_valid_outcome():
    assert services.parse_detection_payload('{"plates": []}').is_empty


def test_service_order_is_preserved():
    numbers = ["C3", "A1", "B2"]
    result = services.parse_detection_payload({"plates": [_plate(n) for n in numbers]})

    assert [p.plate_number for p in result.plates] == numbers


def test_unknown_confidence_is_coerced_to_low():
    result = services.parse_detection_payload({"plates": [_plate(confidence="certain"), _plate(confidence="MEDIUM")]})

    assert [p.confidence for p in result.plates] == [Confidence.LOW, Confidence.MEDIUM]


def test_optional_fields_are_parsed():
    result = services.parse_detection_payload(json.dumps({"plates": [_plate(vehicleType="SUV", color="", region=7)]}))
    plate = result.plates[0]

    assert plate.vehicle_type == "SUV"
    assert plate.color is None
    assert plate.region == "7"
    assert plate.owner_name is None


def test_unparsable_text_is_a_recognition_failure():
    with pytest.raises(RecognitionFailure):
        services.parse_detection_payload("{not json")


@pytest.mark.parametrize("payload", ['[]', '{"cars": []}', '{"plates": {}}', "null"])
def test_missing_wrapper_is_a_schema_violation(payload):
    with pytest.raises(SchemaViolation):
        services.parse_detection_payload(payload)


def test_overlay_rect_for_example_plate():
    rect = services.to_overlay_rect(BoundingBox(**BOX))

    assert (rect.top_pct, rect.left_pct, rect.width_pct, rect.height_pct) == (10, 20, 40, 10)


def test_overlay_rect_stays_within_display():
    boxes = [
        (0, 0, 0, 0),
        (0, 0, 1000, 1000),
        (999, 1, 1000, 999),
        (250.5, 125.25, 750.5, 875.75),
        (1000, 1000, 1000, 1000),
    ]
    for ymin, xmin, ymax, xmax in boxes:
        rect = services.to_overlay_rect(BoundingBox(ymin=ymin, xmin=xmin, ymax=ymax, xmax=xmax))
        assert 0 <= rect.top_pct <= 100
        assert 0 <= rect.left_pct <= 100
        assert rect.width_pct == (xmax - xmin) / 10
        assert rect.height_pct == (ymax - ymin) / 10
        assert rect.left_pct + rect.width_pct <= 100


def test_degenerate_box_passes_through():
    rect = services.to_overlay_rect(BoundingBox(ymin=500, xmin=300, ymax=500, xmax=300))

    assert rect.width_pct == 0
    assert rect.height_pct == 0
    assert rect.top_pct == 50


def test_pixel_rect_scales_to_image():
    rect = services.to_pixel_rect(BoundingBox(**BOX), img_w=1000, img_h=500)

    assert (rect.x, rect.y, rect.w, rect.h) == (200, 50, 400, 50)


def test_build_overlays_keeps_labels():
    detections = services.parse_detection_payload({"plates": [_plate("X1"), _plate("Y2", confidence="low")]})
    overlays = services.build_overlays(detections)

    assert [(o.plate_number, o.confidence) for o in overlays] == [("X1", Confidence.HIGH), ("Y2", Confidence.LOW)]


def test_summarize_session():
    image = EncodedImage(data=b"x")
    high = DetectionSet(plates=(PlateDetection.model_validate(_plate()),))
    low = DetectionSet(plates=(PlateDetection.model_validate(_plate(confidence="low")),) * 2)
    entries = [HistoryEntry(detections=d, image=image) for d in (high, low, DetectionSet())]

    stats = services.summarize_session(entries)

    assert stats.scan_count == 3
    assert stats.plates_detected == 3
    assert stats.high_confidence_scans == 1
    assert stats.throughput_pct == 30
