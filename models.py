"""
数据模型定义
"""
from enum import Enum
from typing import Optional, Tuple, Union

from PIL import ImageColor
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator


class ImageFormat(str, Enum):
    """支持的图片格式"""
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    @property
    def pil_format(self) -> str:
        """Pillow 使用的格式名"""
        return self.value.upper()

    @property
    def content_type(self) -> str:
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        return ".jpg" if self is ImageFormat.JPEG else f".{self.value}"

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["ImageFormat"]:
        """
        从格式名、扩展名或MIME类型解析格式

        无法识别时返回 None
        """
        if not name:
            return None
        key = name.strip().lower().split(";")[0].strip()
        key = key.rsplit("/", 1)[-1].lstrip(".")
        # MPO 是带附加图像的 JPEG（多数手机相机输出）
        aliases = {"jpg": "jpeg", "jpe": "jpeg", "pjpeg": "jpeg", "mpo": "jpeg"}
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None


ColorValue = Union[str, Tuple[int, int, int]]


def _normalize_color(value):
    """RGB三元组统一转成HEX字符串，字符串原样保留"""
    if isinstance(value, (tuple, list)):
        if len(value) != 3 or not all(isinstance(c, int) and 0 <= c <= 255 for c in value):
            raise ValueError(f"Invalid RGB triple: {value!r}")
        return "#{:02X}{:02X}{:02X}".format(*value)
    return value


class WatermarkStyle(BaseModel):
    """已解析的水印样式（所有字段均已确定）"""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    text: str = Field(..., max_length=200, description="水印文字")
    font_size_px: Optional[int] = Field(default=None, gt=0, le=1000, description="绝对字体大小(像素)")
    font_size_relative: Optional[float] = Field(
        default=None, gt=0, le=1, description="相对字体大小(图片短边的比例)"
    )
    opacity: float = Field(..., ge=0.0, le=1.0, description="透明度")
    color: str = Field(..., description="字体颜色(HEX、颜色名或RGB三元组)")
    angle: float = Field(default=-45, description="旋转角度")
    tile_spacing: Optional[float] = Field(default=None, ge=20, le=10000, description="平铺间距(像素)，为空时自动推导")

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Watermark text cannot be empty")
        return value

    @field_validator("color", mode="before")
    @classmethod
    def _parse_color(cls, value):
        value = _normalize_color(value)
        ImageColor.getrgb(value)
        return value

    @model_validator(mode="after")
    def _single_font_size_mode(self) -> "WatermarkStyle":
        if self.font_size_px is not None and self.font_size_relative is not None:
            raise ValueError("font_size_px and font_size_relative are mutually exclusive")
        return self

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return ImageColor.getrgb(self.color)[:3]

    @property
    def paint_rgba(self) -> Tuple[int, int, int, int]:
        """颜色与透明度合成的画笔颜色"""
        return (*self.rgb, round(self.opacity * 255))


class StyleOverrides(BaseModel):
    """样式覆盖项，未设置的字段沿用默认值（校验在合并时统一进行）"""
    text: Optional[str] = None
    font_size_px: Optional[int] = None
    font_size_relative: Optional[float] = None
    opacity: Optional[float] = None
    color: Optional[ColorValue] = None
    angle: Optional[float] = None
    tile_spacing: Optional[float] = None


class WatermarkSettingsRecord(BaseModel):
    """管理后台保存的 watermark 设置记录"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: Optional[str] = None
    font_size: Optional[int] = Field(default=None, alias="fontSize")
    font_size_relative: Optional[float] = Field(default=None, alias="fontSizeRelative")
    opacity: Optional[float] = None
    color: Optional[str] = None
    angle: Optional[float] = None
    spacing: Optional[float] = None

    def to_overrides(self) -> StyleOverrides:
        return StyleOverrides(
            text=self.text,
            font_size_px=self.font_size,
            font_size_relative=self.font_size_relative,
            opacity=self.opacity,
            color=self.color,
            angle=self.angle,
            tile_spacing=self.spacing,
        )


class WatermarkRequest(BaseModel):
    """水印请求 - URL方式"""
    url: HttpUrl = Field(..., description="图片URL")
    watermark_text: Optional[str] = Field(default=None, max_length=200, description="水印文字(为空时使用默认文字)")
    style: Optional[StyleOverrides] = Field(default=None, description="样式覆盖")
    output_format: Optional[ImageFormat] = Field(default=None, description="输出格式，默认与原图相同")
    quality: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="输出质量(0~1)")


class WatermarkResponse(BaseModel):
    """水印响应"""
    success: bool
    message: str
    download_url: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
