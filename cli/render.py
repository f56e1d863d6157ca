from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_anchor(payload: Dict[str, Any]) -> None:
    echo_heading("Anchor")
    meta_pairs = [
        ("status", payload.get("status")),
        ("tx", payload.get("tx")),
    ]
    if payload.get("durationSeconds") is not None:
        meta_pairs.append(("durationSeconds", payload.get("durationSeconds")))
    if payload.get("digest"):
        meta_pairs.append(("digest", payload.get("digest")))
    echo_key_values(meta_pairs)

    summary = payload.get("summary") or {}
    typer.echo()
    echo_heading("Summary")
    if summary:
        echo_key_values(
            [
                ("temperature (min/avg/max)", "{}/{}/{}".format(
                    summary.get("minTemperature"),
                    summary.get("averageTemperature"),
                    summary.get("maxTemperature"),
                )),
                ("averageHumidity", summary.get("averageHumidity")),
                ("travelDurationSeconds", summary.get("travelDurationSeconds")),
                ("arrival", f"{summary.get('maxShockLatitude')}, {summary.get('maxShockLongitude')}"),
            ]
        )
    else:
        typer.echo("No summary available.")


def render_status(payload: Dict[str, Any]) -> None:
    echo_heading("Shipment Status")
    echo_key_values(
        [
            ("batchId", payload.get("batchId")),
            ("status", payload.get("status")),
            ("pickupTimestamp", payload.get("pickupTimestamp")),
            ("deliveryTimestamp", payload.get("deliveryTimestamp")),
            ("readingCount", payload.get("readingCount")),
        ]
    )


def render_consumer(batch_id: str, payload: Dict[str, Any]) -> None:
    echo_heading(f"Batch {batch_id}")
    echo_key_values(
        [
            ("avgTemp", payload.get("avgTemp")),
            ("avgHumidity", payload.get("avgHumidity")),
        ]
    )
