"""
平铺几何计算 - 与具体绘图库无关

坐标约定与 2D canvas 相同：y 轴向下，先平移到图片中心再旋转，
负角度使文字基线向右上倾斜。
"""
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import config as app_config
from models import WatermarkStyle
from services.exceptions import InvalidStyleError

Point = Tuple[float, float]


@dataclass(frozen=True)
class TileLayout:
    """一次合成的平铺方案"""
    width: int
    height: int
    font_size: int
    step: float
    angle: float
    diagonal: float
    centers: List[Point]

    @property
    def origin(self) -> Point:
        return self.width / 2, self.height / 2

    def canvas_points(self) -> List[Point]:
        """把局部坐标系中的平铺中心换算到画布坐标"""
        return [to_canvas(point, self.angle, self.origin) for point in self.centers]


def resolve_font_size(style: WatermarkStyle, width: int, height: int) -> int:
    """按图片尺寸解析字体大小(像素)"""
    if style.font_size_relative is not None:
        # 相对字号是推导值，极小图片至少保留 1 像素
        size = max(1, math.floor(min(width, height) * style.font_size_relative))
    elif style.font_size_px is not None:
        size = style.font_size_px
    else:
        size = app_config.FALLBACK_FONT_SIZE_PX

    # 相对模式已保证至少 1 像素，只有绝对字号会走到这里
    if size <= 0:
        raise InvalidStyleError(f"Resolved font size must be positive, got {size}")
    if size > app_config.MAX_FONT_SIZE_PX:
        raise InvalidStyleError(
            f"Resolved font size {size}px exceeds the {app_config.MAX_FONT_SIZE_PX}px limit"
        )
    return size


def resolve_step(style: WatermarkStyle, font_size: int, text_width: Optional[float] = None) -> float:
    """平铺间距：显式值优先，否则 max(文字宽度*1.5, 字号*3)"""
    if style.tile_spacing is not None:
        step = float(style.tile_spacing)
    elif text_width:
        step = max(text_width * 1.5, font_size * 3.0)
    else:
        step = font_size * 3.0

    if step <= 0:
        raise InvalidStyleError(f"Tile spacing must be positive, got {step}")
    return step


def tile_centers(width: int, height: int, step: float) -> Tuple[float, List[Point]]:
    """
    计算局部坐标系中的全部平铺中心

    以图片对角线为边长的正方形覆盖旋转后画布的四个角，
    x、y 均从 -diag/2 开始按 step 递增到 diag/2（不含）。

    Returns:
        (对角线长度, 中心点列表)，先按 x 后按 y 排列
    """
    diagonal = math.sqrt(width ** 2 + height ** 2)
    half = diagonal / 2
    count = max(0, math.ceil(diagonal / step))

    axis = [-half + i * step for i in range(count)]
    axis = [value for value in axis if value < half]
    return diagonal, [(x, y) for x in axis for y in axis]


def to_canvas(point: Point, angle: float, origin: Point) -> Point:
    """局部坐标 -> 画布坐标（先旋转再平移）"""
    radians = math.radians(angle)
    cos_a = math.cos(radians)
    sin_a = math.sin(radians)
    x, y = point
    return (
        origin[0] + x * cos_a - y * sin_a,
        origin[1] + x * sin_a + y * cos_a,
    )


def plan_tiles(
    width: int,
    height: int,
    style: WatermarkStyle,
    measure=None
) -> TileLayout:
    """
    生成平铺方案

    Args:
        width: 图片宽度
        height: 图片高度
        style: 已解析的样式
        measure: 可选的文字宽度测量函数 (text, font_size) -> float

    Returns:
        TileLayout
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")

    font_size = resolve_font_size(style, width, height)
    text_width = measure(style.text, font_size) if measure is not None else None
    step = resolve_step(style, font_size, text_width)
    per_axis = math.ceil(math.hypot(width, height) / step)
    if per_axis < 1 or per_axis ** 2 > app_config.MAX_TILES:
        raise InvalidStyleError(
            f"Tile spacing {step:.1f}px yields {per_axis ** 2} tiles, "
            f"expected between 1 and {app_config.MAX_TILES}"
        )
    diagonal, centers = tile_centers(width, height, step)

    return TileLayout(
        width=width,
        height=height,
        font_size=font_size,
        step=step,
        angle=style.angle,
        diagonal=diagonal,
        centers=centers,
    )
