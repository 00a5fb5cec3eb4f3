class DecodeError(ValueError):
    """
    The output tensors could not be decoded. No detections exist for the frame.
    """


class ShapeMismatchError(DecodeError):
    """
    Layer count, dims or buffer size do not match what the decoder expects.
    """
