"""
水印处理异常
"""


class WatermarkError(Exception):
    """水印处理异常基类"""


class DecodeError(WatermarkError):
    """原图无法按声明的格式解码，或格式不受支持"""


class ImageTooLargeError(DecodeError):
    """解码后的像素数超过服务限制"""

    def __init__(self, width: int, height: int, limit: int):
        super().__init__(f"Image {width}x{height} exceeds the {limit} pixel limit")
        self.width = width
        self.height = height
        self.limit = limit


class InvalidStyleError(WatermarkError):
    """水印样式字段越界或缺失"""


class EncodeError(WatermarkError):
    """输出图片编码失败"""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
