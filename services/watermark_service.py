"""
水印服务 - 图片平铺文字水印合成
"""
import io
import glob
import math
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError, features

import config as app_config
from models import ImageFormat, WatermarkStyle
from services.exceptions import DecodeError, EncodeError, ImageTooLargeError, InvalidStyleError
from services.tiling import TileLayout, plan_tiles


# 全局字体路径配置（支持中文）
CHINESE_FONT_PATHS = [
    # Docker 容器内置字体
    "/usr/share/fonts/chinese/LXGWWenKai-Regular.ttf",  # 霞鹜文楷
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    # Windows
    "C:/Windows/Fonts/msyh.ttc",      # 微软雅黑
    "C:/Windows/Fonts/simhei.ttf",    # 黑体
    "C:/Windows/Fonts/arial.ttf",
    # macOS
    "/System/Library/Fonts/PingFang.ttc",           # 苹方
    "/System/Library/Fonts/STHeiti Light.ttc",      # 华文黑体
    "/Library/Fonts/Arial Unicode.ttf",
]

# 带透明通道的模式
ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}


logger = logging.getLogger(__name__)


def _find_system_fonts() -> list:
    """动态查找系统中的字体"""
    patterns = [
        "/usr/share/fonts/**/*.ttf",
        "/usr/share/fonts/**/*.otf",
        "/usr/share/fonts/**/*.ttc",
    ]
    found = []
    for pattern in patterns:
        found.extend(sorted(glob.glob(pattern, recursive=True)))
    return found


@lru_cache(maxsize=1)
def resolve_font_path() -> Optional[str]:
    """
    选出可用的字体文件路径

    只缓存路径，字体对象每次合成时重新创建，避免线程间共享。
    """
    font_paths = []
    if app_config.CUSTOM_FONT_PATH and Path(app_config.CUSTOM_FONT_PATH).exists():
        font_paths.append(app_config.CUSTOM_FONT_PATH)
    font_paths.extend(CHINESE_FONT_PATHS)
    font_paths.extend(_find_system_fonts())

    for font_path in font_paths:
        if not Path(font_path).exists():
            continue
        try:
            ImageFont.truetype(font_path, 12, index=0)
        except OSError as e:
            logger.error(f"加载字体失败 {font_path}: {e}")
            continue
        logger.info(f"使用字体: {font_path}")
        return font_path

    logger.warning("未找到系统字体，使用 Pillow 内置字体")
    return None


def get_font(size: int) -> Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]:
    """获取指定大小的字体"""
    font_path = resolve_font_path()
    if font_path:
        return ImageFont.truetype(font_path, size, index=0)
    return ImageFont.load_default(size=size)


def measure_text(text: str, font) -> Tuple[int, int, Tuple[int, int, int, int]]:
    """测量文字墨迹框，返回 (宽, 高, bbox)"""
    bbox = font.getbbox(text)
    return bbox[2] - bbox[0], bbox[3] - bbox[1], bbox


def decode_image(
    data: bytes,
    image_format: Optional[Union[ImageFormat, str]] = None,
    max_pixels: Optional[int] = None
) -> Tuple[Image.Image, ImageFormat]:
    """
    解码原图

    Args:
        data: 图片二进制数据
        image_format: 声明的格式，为空时按内容识别
        max_pixels: 像素上限，超过时抛出 ImageTooLargeError

    Returns:
        (已加载的图片, 实际格式)
    """
    if not data:
        raise DecodeError("Source image is empty")

    declared = None
    if image_format is not None:
        declared = ImageFormat.from_name(str(getattr(image_format, "value", image_format)))
        if declared is None:
            raise DecodeError(f"Unsupported source format: {image_format}")

    formats = [declared.pil_format] if declared else [f.pil_format for f in ImageFormat]
    try:
        img = Image.open(io.BytesIO(data), formats=formats)
        width, height = img.size
        if max_pixels and width * height > max_pixels:
            raise ImageTooLargeError(width, height, max_pixels)
        img.load()
    except ImageTooLargeError:
        raise
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        expected = declared.value if declared else "jpeg/png/webp"
        raise DecodeError(f"Cannot decode image as {expected}: {e}") from e

    actual = ImageFormat.from_name(img.format)
    if actual is None:
        raise DecodeError(f"Unsupported source format: {img.format}")
    if img.width <= 0 or img.height <= 0:
        raise DecodeError(f"Invalid image size: {img.size}")
    return img, actual


def _render_stamp(text: str, font, angle: float, max_side: Optional[int] = None) -> Image.Image:
    """
    渲染单个旋转后的文字遮罩(L模式)

    文字墨迹框中心位于遮罩中心，遮罩边长不小于文字对角线，旋转后不会被裁切。
    max_side 限制遮罩边长，超出部分离平铺中心太远，落不到画布上。
    """
    text_width, text_height, bbox = measure_text(text, font)
    side = int(math.ceil(math.hypot(text_width, text_height))) + 4
    if max_side is not None:
        side = min(side, max_side)
    stamp = Image.new("L", (side, side), 0)
    draw = ImageDraw.Draw(stamp)

    x = side / 2 - (bbox[0] + bbox[2]) / 2
    y = side / 2 - (bbox[1] + bbox[3]) / 2
    draw.text((x, y), text, font=font, fill=255)

    # canvas 的正角度为顺时针，Pillow 的 rotate 为逆时针
    if angle % 360 != 0:
        stamp = stamp.rotate(-angle, resample=Image.BICUBIC, expand=False)
    return stamp


def render_watermark(
    base: Image.Image,
    style: WatermarkStyle,
    layout: TileLayout,
    font
) -> Image.Image:
    """
    在原图副本上绘制平铺水印

    Args:
        base: 原图（不会被修改）
        style: 已解析的样式
        layout: 平铺方案
        font: 对应 layout.font_size 的字体

    Returns:
        RGBA 模式的新图片
    """
    canvas = base.convert("RGBA")
    paint = style.paint_rgba
    if paint[3] == 0:
        logger.info("水印透明度为0，跳过绘制")
        return canvas

    # 平铺中心距画布中心不超过 diag/√2，画布像素不超过 diag/2
    max_side = int(math.ceil(layout.diagonal * 2.5)) + 4
    stamp = _render_stamp(style.text, font, layout.angle, max_side)
    half = stamp.width / 2

    # 先在遮罩层上叠加全部文字，再按透明度一次性合成
    mask = Image.new("L", canvas.size, 0)
    for cx, cy in layout.canvas_points():
        mask.paste(255, (int(round(cx - half)), int(round(cy - half))), stamp)

    alpha = mask.point(lambda v: round(v * paint[3] / 255))
    overlay = Image.new("RGBA", canvas.size, paint[:3] + (0,))
    overlay.putalpha(alpha)
    return Image.alpha_composite(canvas, overlay)


def _quality_to_encoder(quality: float) -> int:
    if quality is None or not 0.0 <= quality <= 1.0:
        raise EncodeError(f"Output quality must be within [0, 1], got {quality}", retryable=False)
    return int(round(quality * 100))


def encode_image(
    img: Image.Image,
    output_format: Union[ImageFormat, str],
    quality: float,
    keep_alpha: bool = False
) -> bytes:
    """
    编码输出图片

    Args:
        img: 待编码图片
        output_format: 目标格式
        quality: 编码质量，0~1（编码器最高质量的比例），PNG 忽略
        keep_alpha: 是否保留透明通道（JPEG 总是去掉）
    """
    target = ImageFormat.from_name(str(getattr(output_format, "value", output_format)))
    if target is None:
        raise EncodeError(f"Unsupported output format: {output_format}", retryable=False)
    if target is ImageFormat.WEBP and not features.check("webp"):
        raise EncodeError("WebP encoding is not available in this Pillow build", retryable=False)

    encoder_quality = _quality_to_encoder(quality)

    if target is ImageFormat.JPEG or not keep_alpha:
        img = img.convert("RGB")

    params = {}
    if target is ImageFormat.JPEG:
        params["quality"] = encoder_quality
    elif target is ImageFormat.WEBP:
        params["quality"] = encoder_quality

    output = io.BytesIO()
    try:
        img.save(output, format=target.pil_format, **params)
    except MemoryError as e:
        raise EncodeError(f"Out of memory while encoding {target.value}", retryable=True) from e
    except (OSError, ValueError) as e:
        raise EncodeError(f"Failed to encode {target.value}: {e}", retryable=False) from e
    return output.getvalue()


def composite(
    source_bytes: bytes,
    source_format: Optional[Union[ImageFormat, str]],
    style: WatermarkStyle,
    output_format: Union[ImageFormat, str],
    output_quality: float,
    max_pixels: Optional[int] = None
) -> bytes:
    """
    为图片添加平铺文字水印

    Args:
        source_bytes: 原图二进制数据
        source_format: 声明的原图格式，为空时按内容识别
        style: 已解析的样式
        output_format: 输出格式
        output_quality: 输出质量(0~1)
        max_pixels: 可选的像素上限

    Returns:
        添加水印后的图片二进制数据

    Raises:
        DecodeError: 原图无法解码
        InvalidStyleError: 样式在当前图片尺寸下无效
        EncodeError: 输出编码失败
    """
    if not isinstance(style, WatermarkStyle):
        raise InvalidStyleError("A resolved WatermarkStyle is required")

    img, actual_format = decode_image(source_bytes, source_format, max_pixels)
    width, height = img.size
    keep_alpha = img.mode in ALPHA_MODES or "transparency" in img.info

    layout = plan_tiles(
        width, height, style,
        measure=lambda text, size: measure_text(text, get_font(size))[0]
    )
    font = get_font(layout.font_size)
    logger.info(
        f"合成水印: {actual_format.value} {width}x{height}, 字号 {layout.font_size}, "
        f"间距 {layout.step:.1f}, 角度 {layout.angle}, 平铺 {len(layout.centers)} 处"
    )

    result = render_watermark(img, style, layout, font)
    img.close()

    data = encode_image(result, output_format, output_quality, keep_alpha=keep_alpha)
    logger.info(f"编码完成: {len(data)} bytes")
    return data


def sniff_format(data: bytes) -> Optional[ImageFormat]:
    """只读文件头识别图片格式，无法识别时返回 None"""
    try:
        with Image.open(io.BytesIO(data), formats=[f.pil_format for f in ImageFormat]) as img:
            return ImageFormat.from_name(img.format)
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None


def add_watermark(
    file_data: bytes,
    style: WatermarkStyle,
    source_format: Optional[ImageFormat] = None,
    output_format: Optional[ImageFormat] = None,
    quality: Optional[float] = None
) -> Tuple[bytes, ImageFormat]:
    """
    统一的水印添加接口

    未指定输出格式时与原图格式相同；无法确定原图格式时输出 JPEG。

    Returns:
        (添加水印后的文件二进制数据, 输出格式)
    """
    target = output_format or source_format or sniff_format(file_data) or ImageFormat.JPEG
    if quality is None:
        quality = app_config.DEFAULT_OUTPUT_QUALITY
    data = composite(
        source_bytes=file_data,
        source_format=source_format,
        style=style,
        output_format=target,
        output_quality=quality,
        max_pixels=app_config.MAX_IMAGE_PIXELS,
    )
    return data, target
