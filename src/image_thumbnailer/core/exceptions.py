"""项目内使用的自定义异常定义。"""


class ThumbnailerError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(ThumbnailerError):
    """配置或输出格式不合法时抛出。"""


class EngineNotFound(ThumbnailerError):
    """未指定引擎路径且在 PATH 中找不到默认引擎。"""


class EngineNotInvocable(ThumbnailerError):
    """显式指定的引擎路径不存在或不可执行。"""


class SourcePathInvalid(ThumbnailerError):
    """源目录不存在、不可读或无法遍历。"""


class InvalidDimensions(ThumbnailerError):
    """引擎无法给出有效的图片尺寸。"""


class ProcessingAborted(ThumbnailerError):
    """任务被用户中断时抛出。"""
