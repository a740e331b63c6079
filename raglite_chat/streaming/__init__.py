"""Incremental event stream parsing for raglite_chat.

The reconciler and processor live in their own modules
(``raglite_chat.streaming.reconciler``, ``raglite_chat.streaming.processor``)
because they depend on the chat store.
"""
from .records import Channel, ControlRecord, Record, SequencePolicy, TokenRecord
from .frame_splitter import FrameSplitter, split_frames
from .event_decoder import DecodedEvent, decode_event
from .token_extractor import classify_object, extract_object_records, extract_records, iter_object_spans

__all__ = [
    'Channel', 'ControlRecord', 'Record', 'SequencePolicy', 'TokenRecord',
    'FrameSplitter', 'split_frames',
    'DecodedEvent', 'decode_event',
    'classify_object', 'extract_object_records', 'extract_records', 'iter_object_spans',
]
