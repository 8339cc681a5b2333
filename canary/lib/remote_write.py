"""Remote-write request encoding.

Builds the Prometheus remote-write (v1) protobuf messages at import time
from a descriptor, so no generated code has to be checked in, and turns
model TimeSeries batches into snappy-compressed request bodies.

Only the fields the canary writes are declared: labels, float samples
and native histograms. Field numbers follow prometheus/prompb/types.proto.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Tuple

import snappy
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from canary.lib.model import Histogram, TimeSeries

__all__ = [
    "WriteRequest",
    "CONTENT_TYPE",
    "REMOTE_WRITE_VERSION",
    "build_write_request",
    "encode_write_request",
    "decode_write_request",
]

CONTENT_TYPE = "application/x-protobuf"
REMOTE_WRITE_VERSION = "0.1.0"

_PACKAGE = "prometheus"

_F = descriptor_pb2.FieldDescriptorProto

# (name, number, type, label, type_name, oneof_index)
_FieldSpec = Tuple[str, int, int, int, str, int]

_OPTIONAL = _F.LABEL_OPTIONAL
_REPEATED = _F.LABEL_REPEATED

_MESSAGES: List[Tuple[str, List[_FieldSpec]]] = [
    (
        "Label",
        [
            ("name", 1, _F.TYPE_STRING, _OPTIONAL, "", -1),
            ("value", 2, _F.TYPE_STRING, _OPTIONAL, "", -1),
        ],
    ),
    (
        "Sample",
        [
            ("value", 1, _F.TYPE_DOUBLE, _OPTIONAL, "", -1),
            ("timestamp", 2, _F.TYPE_INT64, _OPTIONAL, "", -1),
        ],
    ),
    (
        "BucketSpan",
        [
            ("offset", 1, _F.TYPE_SINT32, _OPTIONAL, "", -1),
            ("length", 2, _F.TYPE_UINT32, _OPTIONAL, "", -1),
        ],
    ),
    (
        "Histogram",
        [
            ("count_int", 1, _F.TYPE_UINT64, _OPTIONAL, "", 0),
            ("count_float", 2, _F.TYPE_DOUBLE, _OPTIONAL, "", 0),
            ("sum", 3, _F.TYPE_DOUBLE, _OPTIONAL, "", -1),
            ("schema", 4, _F.TYPE_SINT32, _OPTIONAL, "", -1),
            ("zero_threshold", 5, _F.TYPE_DOUBLE, _OPTIONAL, "", -1),
            ("zero_count_int", 6, _F.TYPE_UINT64, _OPTIONAL, "", 1),
            ("zero_count_float", 7, _F.TYPE_DOUBLE, _OPTIONAL, "", 1),
            ("negative_spans", 8, _F.TYPE_MESSAGE, _REPEATED, ".prometheus.BucketSpan", -1),
            ("negative_deltas", 9, _F.TYPE_SINT64, _REPEATED, "", -1),
            ("negative_counts", 10, _F.TYPE_DOUBLE, _REPEATED, "", -1),
            ("positive_spans", 11, _F.TYPE_MESSAGE, _REPEATED, ".prometheus.BucketSpan", -1),
            ("positive_deltas", 12, _F.TYPE_SINT64, _REPEATED, "", -1),
            ("positive_counts", 13, _F.TYPE_DOUBLE, _REPEATED, "", -1),
            ("reset_hint", 14, _F.TYPE_ENUM, _OPTIONAL, ".prometheus.Histogram.ResetHint", -1),
            ("timestamp", 15, _F.TYPE_INT64, _OPTIONAL, "", -1),
        ],
    ),
    (
        "TimeSeries",
        [
            ("labels", 1, _F.TYPE_MESSAGE, _REPEATED, ".prometheus.Label", -1),
            ("samples", 2, _F.TYPE_MESSAGE, _REPEATED, ".prometheus.Sample", -1),
            ("histograms", 4, _F.TYPE_MESSAGE, _REPEATED, ".prometheus.Histogram", -1),
        ],
    ),
    (
        "WriteRequest",
        [
            ("timeseries", 1, _F.TYPE_MESSAGE, _REPEATED, ".prometheus.TimeSeries", -1),
        ],
    ),
]


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="canary/remote_write.proto",
        package=_PACKAGE,
        syntax="proto3",
    )
    for message_name, fields in _MESSAGES:
        message = file_proto.message_type.add(name=message_name)
        if message_name == "Histogram":
            message.oneof_decl.add(name="count")
            message.oneof_decl.add(name="zero_count")
            reset_hint = message.enum_type.add(name="ResetHint")
            for value_name, number in (("UNKNOWN", 0), ("YES", 1), ("NO", 2), ("GAUGE", 3)):
                reset_hint.value.add(name=value_name, number=number)
        for name, number, field_type, label, type_name, oneof_index in fields:
            field = message.field.add(name=name, number=number, type=field_type, label=label)
            if type_name:
                field.type_name = type_name
            if oneof_index >= 0:
                field.oneof_index = oneof_index
    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file_descriptor().SerializeToString())

WriteRequest: Any = message_factory.GetMessageClass(
    _pool.FindMessageTypeByName(f"{_PACKAGE}.WriteRequest")
)


def _fill_histogram(target: Any, histogram: Histogram) -> None:
    target.sum = histogram.sum
    target.schema = histogram.schema
    target.zero_threshold = histogram.zero_threshold
    target.reset_hint = int(histogram.reset_hint)
    target.timestamp = histogram.timestamp

    if histogram.float_counts:
        target.count_float = float(histogram.count)
        target.zero_count_float = float(histogram.zero_count)
        target.positive_counts.extend(float(v) for v in histogram.positive_buckets)
        target.negative_counts.extend(float(v) for v in histogram.negative_buckets)
    else:
        target.count_int = int(histogram.count)
        target.zero_count_int = int(histogram.zero_count)
        target.positive_deltas.extend(int(v) for v in histogram.positive_buckets)
        target.negative_deltas.extend(int(v) for v in histogram.negative_buckets)

    for span in histogram.positive_spans:
        target.positive_spans.add(offset=span.offset, length=span.length)
    for span in histogram.negative_spans:
        target.negative_spans.add(offset=span.offset, length=span.length)


def build_write_request(series: Iterable[TimeSeries]) -> Any:
    request = WriteRequest()
    for ts in series:
        out = request.timeseries.add()
        for label in ts.labels:
            out.labels.add(name=label.name, value=label.value)
        for sample in ts.samples:
            out.samples.add(value=sample.value, timestamp=sample.timestamp)
        for histogram in ts.histograms:
            _fill_histogram(out.histograms.add(), histogram)
    return request


def encode_write_request(series: Iterable[TimeSeries]) -> bytes:
    """Serialize and snappy-compress a batch of series."""
    return snappy.compress(build_write_request(series).SerializeToString())


def decode_write_request(body: bytes) -> Any:
    request = WriteRequest()
    request.ParseFromString(snappy.uncompress(body))
    return request
