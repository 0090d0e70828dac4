from __future__ import annotations

import logging
from typing import Any, Optional

from flask import Flask, jsonify, request

from ..common.datetime_utils import parse_iso_datetime
from ..common.validators import require_coordinates
from ..core.enums import CheckOutReason
from ..core.exceptions import (
    ConcurrentModification,
    DomainError,
    DuplicateRecord,
    EventNotFound,
    LocationUnavailable,
    OutsideGeofence,
    ParticipantNotFound,
    RecordNotFound,
    ValidationError,
    WindowNotOpen,
)
from ..container import Container
from ..geofence.model import LocationSample
from ..monitoring.location import Position
from .model import AttendanceRecord

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    ((RecordNotFound, EventNotFound, ParticipantNotFound), 404),
    ((OutsideGeofence, WindowNotOpen, ConcurrentModification, DuplicateRecord), 409),
    ((LocationUnavailable,), 503),
    ((ValidationError,), 400),
)


def _status_for(error: DomainError) -> int:
    for types, status in _STATUS_BY_ERROR:
        if isinstance(error, types):
            return status
    return 400


def register(app: Flask, container: Container) -> None:
    service = container.attendance_service

    @app.errorhandler(DomainError)
    def handle_domain_error(error: DomainError):
        status = _status_for(error)
        body: dict[str, Any] = {"success": False, "error": type(error).__name__, "message": str(error)}
        if isinstance(error, OutsideGeofence):
            body["distance_m"] = round(error.distance_m)
            body["radius_m"] = round(error.radius_m)
        elif isinstance(error, WindowNotOpen) and error.seconds_until_open is not None:
            body["seconds_until_open"] = int(error.seconds_until_open)
        elif isinstance(error, LocationUnavailable):
            body["reason"] = error.reason
        logger.info("%s %s -> %s %s", request.method, request.path, status, body["error"])
        return jsonify(body), status

    def _json() -> dict:
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValidationError("JSON object expected")
        return data

    def _int_field(data: dict, name: str) -> int:
        try:
            return int(data[name])
        except KeyError:
            raise ValidationError(f"{name} is required")
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer")

    def _timestamp(data: dict):
        value = data.get("timestamp")
        return parse_iso_datetime(str(value)) if value else container.clock.now()

    def _accuracy(data: dict) -> Optional[float]:
        value = data.get("accuracy")
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError("accuracy must be a number")

    def _record_payload(record: AttendanceRecord) -> dict:
        payload = service.current_status(record.record_id).to_dict()
        payload["checkout_reason"] = record.checkout_reason.value if record.checkout_reason else None
        payload["duration_minutes"] = record.duration_minutes
        payload["alerts"] = [
            {
                "alert_id": a.alert_id,
                "type": a.alert_type.value,
                "created_at": a.created_at.isoformat(),
                "acknowledged": a.acknowledged,
            }
            for a in record.alerts
        ]
        return payload

    @app.route("/api/events/<int:event_id>/register", methods=["POST"], endpoint="register_participant")
    def register_participant(event_id: int):
        data = _json()
        record = service.register(_int_field(data, "participant_id"), event_id)
        return jsonify({"success": True, "record": _record_payload(record)}), 201

    @app.route("/api/events/<int:event_id>/check-in", methods=["POST"], endpoint="check_in")
    def check_in(event_id: int):
        data = _json()
        participant_id = _int_field(data, "participant_id")
        sample = LocationSample(
            participant_id=participant_id,
            event_id=event_id,
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            accuracy=_accuracy(data),
            timestamp=_timestamp(data),
        )
        record = service.check_in(participant_id, event_id, sample)
        return jsonify({"success": True, "message": "Checked in", "record": _record_payload(record)}), 200

    @app.route("/api/attendance/<int:record_id>/check-out", methods=["POST"], endpoint="check_out")
    def check_out(record_id: int):
        data = _json()
        try:
            reason = CheckOutReason(data.get("reason") or CheckOutReason.MANUAL.value)
        except ValueError:
            raise ValidationError("reason must be 'manual' or 'auto'")
        record = service.check_out(record_id, reason)
        return jsonify({"success": True, "record": _record_payload(record)}), 200

    @app.route("/api/attendance/<int:record_id>/status", methods=["GET"], endpoint="attendance_status")
    def attendance_status(record_id: int):
        return jsonify({"success": True, "status": service.current_status(record_id).to_dict()}), 200

    @app.route("/api/attendance/<int:record_id>/location", methods=["POST"], endpoint="attendance_location")
    def attendance_location(record_id: int):
        data = _json()
        status = service.current_status(record_id)
        sample = LocationSample(
            participant_id=status.participant_id,
            event_id=status.event_id,
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            accuracy=_accuracy(data),
            timestamp=_timestamp(data),
        )
        record = service.observe_location(record_id, sample)
        return jsonify({"success": True, "record": _record_payload(record)}), 200

    @app.route("/api/participants/<int:participant_id>/location", methods=["POST"], endpoint="participant_location")
    def participant_location(participant_id: int):
        data = _json()
        lat, lon = require_coordinates(data.get("latitude"), data.get("longitude"))
        position = Position(latitude=lat, longitude=lon, timestamp=_timestamp(data), accuracy=_accuracy(data))
        delivered = container.location_source.publish(participant_id, position)
        return jsonify({"success": True, "delivered": delivered}), 202

    @app.route(
        "/api/attendance/<int:record_id>/alerts/<alert_id>/acknowledge",
        methods=["POST"],
        endpoint="acknowledge_alert",
    )
    def acknowledge_alert(record_id: int, alert_id: str):
        record = service.acknowledge_alert(record_id, alert_id)
        return jsonify({"success": True, "record": _record_payload(record)}), 200

    @app.route("/api/events", methods=["GET"], endpoint="list_events")
    def list_events():
        now = container.clock.now()
        items = []
        for event in sorted(container.events.list_events(), key=lambda e: e.event_id):
            window = service.calculator.window_for(event)
            items.append(
                {
                    "event_id": event.event_id,
                    "title": event.title,
                    "timezone": event.timezone,
                    "radius_m": event.radius_m,
                    "max_time_outside_s": event.max_time_outside_s,
                    "status": service.calculator.event_status(event, now).value,
                    "starts_at": window.starts_at.isoformat(),
                    "ends_at": window.ends_at.isoformat(),
                    "check_in_opens_at": window.check_in_opens_at.isoformat(),
                    "starts_at_local": container.clock.to_local(window.starts_at, event.timezone).isoformat(),
                }
            )
        return jsonify({"success": True, "events": items}), 200

    @app.route("/api/events/<int:event_id>/overview", methods=["GET"], endpoint="event_overview")
    def event_overview(event_id: int):
        overview = service.event_overview(event_id)
        event = container.events.get_by_id(event_id)
        body = overview.to_dict()
        body["status"] = service.calculator.event_status(event, container.clock.now()).value
        return jsonify({"success": True, "overview": body}), 200

    @app.route("/api/maintenance/sweep", methods=["POST"], endpoint="run_sweep")
    def run_sweep():
        report = container.sweep.run()
        return jsonify(
            {
                "success": True,
                "events_processed": report.events_processed,
                "checked_out": report.checked_out,
                "errors": report.errors,
                "results": report.results,
            }
        ), 200
