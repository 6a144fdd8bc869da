"""
水印服务配置文件
"""
import os
from pathlib import Path

# 服务配置
HOST = os.getenv("WATERMARK_HOST", "0.0.0.0")
PORT = int(os.getenv("WATERMARK_PORT", "9996"))

# 日志级别
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# 下载URL前缀配置
DOWNLOAD_URL_PREFIX = os.getenv("DOWNLOAD_URL_PREFIX", "http://localhost:9996/download")

# 文件存储配置
BASE_DIR = Path(__file__).parent
OUTPUT_DIR = Path(os.getenv("WATERMARK_OUTPUT_DIR", str(BASE_DIR / "output")))
TEMP_DIR = Path(os.getenv("WATERMARK_TEMP_DIR", str(BASE_DIR / "temp")))

# 确保目录存在
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
TEMP_DIR.mkdir(parents=True, exist_ok=True)

# 线程池配置
MAX_WORKERS = int(os.getenv("MAX_WORKERS", "10"))

# 支持的图片类型
SUPPORTED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

# 文件大小限制 (50MB)
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(50 * 1024 * 1024)))

# 解码后的像素上限 (默认 4096x4096 的两倍)
MAX_IMAGE_PIXELS = int(os.getenv("MAX_IMAGE_PIXELS", str(2 * 4096 * 4096)))

# 文件保留时间 (秒)
FILE_RETENTION_SECONDS = int(os.getenv("FILE_RETENTION_SECONDS", "3600"))

# 输出质量，取值 0~1（编码器最高质量的比例）
DEFAULT_OUTPUT_QUALITY = float(os.getenv("DEFAULT_OUTPUT_QUALITY", "0.92"))


def _optional_float(name: str, default):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


# 水印默认配置（唯一的默认值表）
# font_size 与 font_size_relative 二选一；设置了 WATERMARK_FONT_SIZE 时使用绝对像素
_ABSOLUTE_FONT_SIZE = _optional_float("WATERMARK_FONT_SIZE", None)

DEFAULT_WATERMARK_CONFIG = {
    "text": os.getenv("WATERMARK_TEXT", "© YOUR BRAND"),
    "font_size_px": int(_ABSOLUTE_FONT_SIZE) if _ABSOLUTE_FONT_SIZE is not None else None,
    "font_size_relative": (
        None if _ABSOLUTE_FONT_SIZE is not None
        else _optional_float("WATERMARK_FONT_SIZE_RELATIVE", 0.1)
    ),
    "opacity": _optional_float("WATERMARK_OPACITY", 0.25),
    "color": os.getenv("WATERMARK_COLOR", "#FFFFFF"),
    "angle": _optional_float("WATERMARK_ANGLE", -45.0),
    "tile_spacing": _optional_float("WATERMARK_SPACING", None),  # None 表示按文字宽度推导
}

# 两种字号都未给出时的兜底字号（像素）
FALLBACK_FONT_SIZE_PX = 11

# 解析后字号上限（像素），相对字号同样受限
MAX_FONT_SIZE_PX = int(os.getenv("MAX_FONT_SIZE_PX", "1000"))

# 单张图片的平铺数量上限
MAX_TILES = int(os.getenv("MAX_TILES", "10000"))

# 管理员维护的水印设置记录（JSON 文件，可选）
WATERMARK_SETTINGS_FILE = os.getenv("WATERMARK_SETTINGS_FILE", "")

# 自定义字体路径（可选，用于支持特定中文字体）
# 如果设置，将优先使用此字体
CUSTOM_FONT_PATH = os.getenv("CUSTOM_FONT_PATH", "")
