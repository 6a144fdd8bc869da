"""
FastAPI 水印服务主入口
为图片(JPG/PNG/WEBP)添加平铺文字水印
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import quote

import httpx
from fastapi import FastAPI, UploadFile, File, Form, HTTPException
from fastapi.responses import FileResponse, Response
from fastapi.middleware.cors import CORSMiddleware

import config
from models import ImageFormat, StyleOverrides, WatermarkRequest, WatermarkResponse, WatermarkStyle
from services.exceptions import (
    DecodeError, EncodeError, ImageTooLargeError, InvalidStyleError, WatermarkError
)
from services.style_service import base_style, layer_styles
from services.watermark_service import add_watermark
from utils.file_handler import (
    download_file, detect_image_format, get_file_extension,
    generate_output_filename, save_output_file, get_download_url,
    resolve_output_path, cleanup_old_files
)


logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# 线程池
thread_pool = ThreadPoolExecutor(max_workers=config.MAX_WORKERS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时清理旧文件
    cleanup_old_files()

    # 启动定时清理任务
    cleanup_task = asyncio.create_task(periodic_cleanup())

    yield

    # 关闭时清理
    cleanup_task.cancel()
    thread_pool.shutdown(wait=False)


async def periodic_cleanup():
    """定期清理过期文件"""
    while True:
        await asyncio.sleep(300)  # 每5分钟清理一次
        cleanup_old_files()


app = FastAPI(
    title="水印服务 API",
    description="为图片(JPG/PNG/WEBP)添加平铺文字水印",
    version="1.0.0",
    lifespan=lifespan
)

# CORS配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def load_base_style() -> WatermarkStyle:
    """默认值表叠加管理员设置，设置本身无效属于服务端错误"""
    try:
        return base_style()
    except InvalidStyleError as e:
        logger.error(f"水印设置无效: {e}")
        raise HTTPException(status_code=500, detail="水印设置无效，请联系管理员")


def resolve_request_style(*layers: Optional[StyleOverrides]) -> WatermarkStyle:
    """叠加请求中的样式覆盖项"""
    defaults = load_base_style()
    try:
        return layer_styles(defaults, *layers)
    except InvalidStyleError as e:
        raise HTTPException(status_code=400, detail=f"水印样式无效: {e}")


def parse_output_format(value: Optional[str]) -> Optional[ImageFormat]:
    """解析请求中的输出格式"""
    if not value:
        return None
    image_format = ImageFormat.from_name(value)
    if image_format is None:
        raise HTTPException(status_code=400, detail=f"不支持的输出格式: {value}")
    return image_format


def to_http_error(error: WatermarkError) -> HTTPException:
    """水印异常转换为HTTP错误"""
    if isinstance(error, ImageTooLargeError):
        return HTTPException(status_code=413, detail="图片尺寸超过限制")
    if isinstance(error, DecodeError):
        return HTTPException(status_code=400, detail=f"图片无法解码: {error}")
    if isinstance(error, InvalidStyleError):
        return HTTPException(status_code=400, detail=f"水印样式无效: {error}")
    if isinstance(error, EncodeError):
        logger.error(f"图片编码失败 (retryable={error.retryable}): {error}")
        return HTTPException(status_code=500, detail="图片编码失败")
    logger.error(f"水印处理失败: {error}")
    return HTTPException(status_code=500, detail="处理失败")


async def process_watermark_async(
    file_data: bytes,
    style: WatermarkStyle,
    source_format: Optional[ImageFormat],
    output_format: Optional[ImageFormat],
    quality: Optional[float]
):
    """在线程池中合成水印"""
    loop = asyncio.get_event_loop()
    try:
        return await loop.run_in_executor(
            thread_pool,
            add_watermark,
            file_data, style, source_format, output_format, quality
        )
    except WatermarkError as e:
        raise to_http_error(e) from e


@app.post("/api/watermark/url", response_model=WatermarkResponse, summary="URL方式添加水印")
async def add_watermark_by_url(request: WatermarkRequest):
    """
    通过URL下载图片，添加水印后保存并返回下载地址

    - **url**: 图片URL地址
    - **watermark_text**: 水印文字（可选，默认使用配置中的文字）
    - **style**: 样式覆盖（可选）
    - **output_format**: 输出格式 (jpeg/png/webp)，默认与原图相同
    - **quality**: 输出质量 (0~1)
    """
    try:
        style = resolve_request_style(request.style, StyleOverrides(text=request.watermark_text))

        # 下载文件
        try:
            file_data, original_filename, content_type = await download_file(str(request.url))
        except httpx.HTTPError as e:
            logger.warning(f"图片下载失败 {request.url}: {e}")
            raise HTTPException(status_code=400, detail="图片下载失败")

        # 检查文件大小
        if len(file_data) > config.MAX_FILE_SIZE:
            raise HTTPException(status_code=413, detail="文件大小超过限制")

        source_format = detect_image_format(get_file_extension(original_filename), content_type)

        result_data, output_format = await process_watermark_async(
            file_data=file_data,
            style=style,
            source_format=source_format,
            output_format=request.output_format,
            quality=request.quality
        )

        # 保存输出文件
        output_filename = generate_output_filename(original_filename, output_format)
        save_output_file(result_data, output_filename)

        return WatermarkResponse(
            success=True,
            message="水印添加成功",
            download_url=get_download_url(output_filename),
            filename=output_filename,
            content_type=output_format.content_type
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"处理失败: {e}")
        raise HTTPException(status_code=500, detail="处理失败")


@app.post("/api/watermark/file", summary="文件上传方式添加水印")
async def add_watermark_by_file(
    file: UploadFile = File(..., description="要添加水印的图片"),
    watermark_text: Optional[str] = Form(default=None, description="水印文字"),
    font_size: Optional[int] = Form(default=None, description="字体大小(像素)"),
    font_size_relative: Optional[float] = Form(default=None, description="相对字体大小(短边比例)"),
    font_color: Optional[str] = Form(default=None, description="字体颜色"),
    opacity: Optional[float] = Form(default=None, description="透明度"),
    angle: Optional[float] = Form(default=None, description="旋转角度"),
    spacing: Optional[float] = Form(default=None, description="水印间距"),
    output_format: Optional[str] = Form(default=None, description="输出格式(jpeg/png/webp)"),
    quality: Optional[float] = Form(default=None, ge=0.0, le=1.0, description="输出质量(0~1)")
):
    """
    通过文件上传添加水印，直接返回处理后的图片

    支持的图片格式: jpg, jpeg, png, webp
    """
    try:
        # 读取文件内容
        file_data = await file.read()

        # 检查文件大小
        if len(file_data) > config.MAX_FILE_SIZE:
            raise HTTPException(status_code=413, detail="文件大小超过限制")

        original_filename = file.filename or "image"
        extension = get_file_extension(original_filename)
        source_format = detect_image_format(extension, file.content_type or "")
        if source_format is None and extension and extension not in config.SUPPORTED_IMAGE_EXTENSIONS:
            raise HTTPException(status_code=400, detail=f"不支持的文件类型: {extension}")

        target_format = parse_output_format(output_format)

        # 构建水印样式
        style = resolve_request_style(StyleOverrides(
            text=watermark_text,
            font_size_px=font_size,
            font_size_relative=font_size_relative,
            color=font_color,
            opacity=opacity,
            angle=angle,
            tile_spacing=spacing
        ))

        result_data, result_format = await process_watermark_async(
            file_data=file_data,
            style=style,
            source_format=source_format,
            output_format=target_format,
            quality=quality
        )

        output_filename = generate_output_filename(original_filename, result_format)
        return Response(
            content=result_data,
            media_type=result_format.content_type,
            headers={"Content-Disposition": f"inline; filename*=UTF-8''{quote(output_filename)}"}
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"处理失败: {e}")
        raise HTTPException(status_code=500, detail="处理失败")


@app.get("/download/{filename}", summary="下载文件")
async def download_file_endpoint(filename: str):
    """下载已处理的文件"""
    file_path = resolve_output_path(filename)

    if file_path is None:
        raise HTTPException(status_code=404, detail="文件不存在或已过期")

    image_format = ImageFormat.from_name(file_path.suffix)
    return FileResponse(
        path=file_path,
        filename=filename,
        media_type=image_format.content_type if image_format else "application/octet-stream"
    )


@app.get("/api/config", summary="获取服务配置")
async def get_config():
    """获取当前服务配置"""
    return {
        "max_file_size": config.MAX_FILE_SIZE,
        "max_file_size_mb": config.MAX_FILE_SIZE / (1024 * 1024),
        "max_image_pixels": config.MAX_IMAGE_PIXELS,
        "file_retention_seconds": config.FILE_RETENTION_SECONDS,
        "supported_image_formats": sorted(config.SUPPORTED_IMAGE_EXTENSIONS),
        "default_output_quality": config.DEFAULT_OUTPUT_QUALITY,
        "default_style": load_base_style().model_dump(),
        "max_workers": config.MAX_WORKERS,
        "download_url_prefix": config.DOWNLOAD_URL_PREFIX
    }


@app.get("/health", summary="健康检查")
async def health_check():
    """服务健康检查"""
    return {"status": "healthy", "service": "watermark-service"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=True
    )
