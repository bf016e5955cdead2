"""
Test Context Channels
Verify compression, flow and merge semantics between levels
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import torch

from nested_learning.core.context import ContextChannel, FlowDirection
from nested_learning.exceptions import ShapeMismatchError


def test_flow_without_compression():
    """Lossless channel stores the context as-is"""
    print("\n" + "-" * 70)
    print("TEST 1: Flow without compression")
    print("-" * 70)

    channel = ContextChannel()
    x = torch.randn(4, 10)
    out = channel.flow(x)

    assert torch.equal(out, x)
    assert channel.payload is out
    print("✓ Payload stored unchanged")

    # None leaves the channel untouched
    assert channel.flow(None) is out
    assert channel.payload is out
    print("✓ flow(None) returns current payload")


def test_compress_slices_columns():
    """Compression keeps the leading feature columns of 2-D context"""
    print("\n" + "-" * 70)
    print("TEST 2: Compression")
    print("-" * 70)

    x = torch.arange(20, dtype=torch.float32).reshape(2, 10)

    half = ContextChannel.compress(x, 0.5)
    assert half.shape == (2, 5)
    assert torch.equal(half, x[:, :5])
    print(f"✓ rate=0.5: {tuple(x.shape)} -> {tuple(half.shape)}")

    # 10 * 0.25 = 2.5 rounds half up to 3
    quarter = ContextChannel.compress(x, 0.25)
    assert quarter.shape == (2, 3)
    print("✓ Rounds half up")

    # Never below one column
    assert ContextChannel.compress(x, 0.0).shape == (2, 1)
    print("✓ Keeps at least one column")

    assert ContextChannel.compress(x, 1.0) is x
    cube = torch.randn(2, 3, 4)
    assert ContextChannel.compress(cube, 0.5) is cube
    assert ContextChannel.compress(None, 0.5) is None
    print("✓ Rate 1.0, non-2-D and None pass through")

    channel = ContextChannel(None, FlowDirection.UPWARD, 0.8)
    out = channel.flow(torch.randn(4, 10))
    assert out.shape == (4, 8)
    assert channel.payload.shape == (4, 8)
    print("✓ Channel with rate 0.8 compresses on flow")


def test_compression_rate_clamped():
    """Out-of-range rates are clamped to [0, 1]"""
    assert ContextChannel(compression_rate=1.5).compression_rate == 1.0
    assert ContextChannel(compression_rate=-0.2).compression_rate == 0.0

    channel = ContextChannel()
    channel.compression_rate = 3.0
    assert channel.compression_rate == 1.0
    print("✓ Compression rate clamped")


def test_merge():
    """Merging averages payloads and keeps the receiver's settings"""
    print("\n" + "-" * 70)
    print("TEST 3: Merge")
    print("-" * 70)

    a = ContextChannel(torch.ones(2, 3), FlowDirection.UPWARD, 0.5)
    b = ContextChannel(torch.full((2, 3), 3.0), FlowDirection.DOWNWARD, 0.9)

    ab = a.merge(b)
    ba = b.merge(a)

    assert torch.allclose(ab.payload, torch.full((2, 3), 2.0))
    assert torch.allclose(ab.payload, ba.payload)
    print("✓ Payload average is symmetric")

    assert ab.direction == FlowDirection.UPWARD and ab.compression_rate == 0.5
    assert ba.direction == FlowDirection.DOWNWARD and ba.compression_rate == 0.9
    print("✓ Direction and compression follow the receiver")

    # Inputs untouched
    assert torch.equal(a.payload, torch.ones(2, 3))
    assert ab is not a and ab is not b
    print("✓ Inputs not modified")

    assert a.merge(None) is a
    empty = ContextChannel()
    assert torch.equal(empty.merge(b).payload, b.payload)
    assert torch.equal(a.merge(ContextChannel()).payload, a.payload)
    print("✓ Missing payloads handled")


def test_merge_shape_mismatch():
    a = ContextChannel(torch.ones(2, 3))
    b = ContextChannel(torch.ones(2, 4))

    with pytest.raises(ShapeMismatchError):
        a.merge(b)
    with pytest.raises(ValueError):
        b.merge(a)
    print("✓ Shape mismatch raises")


if __name__ == "__main__":
    print("=" * 70)
    print("Testing Context Channels")
    print("=" * 70)
    try:
        test_flow_without_compression()
        test_compress_slices_columns()
        test_compression_rate_clamped()
        test_merge()
        test_merge_shape_mismatch()

        print("\n" + "=" * 70)
        print("✅ ALL CONTEXT TESTS PASSED")
        print("=" * 70)
    except Exception as e:
        print(f"\n❌ TEST FAILED: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
