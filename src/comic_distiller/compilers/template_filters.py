"""Jinja2 filters for page template rendering.

These filters are used in the XHTML templates to place page images inside
the device viewport.
"""

from comic_distiller.transformers.image_filters import fit_size
from schemas.options import ViewPort


def format_viewport(view: ViewPort) -> str:
    """Format a viewport for the ``<meta name="viewport">`` tag.

    Examples:
        >>> format_viewport(ViewPort(width=1200, height=1920))
        'width=1200,height=1920'
    """
    return f"width={view.width},height={view.height}"


def image_style(size: tuple[int, int], view: ViewPort, align: str = "") -> str:
    """Build the inline CSS centring an image of ``size`` inside ``view``.

    The image is scaled to fit the viewport. It is centred vertically and,
    unless ``align`` pins it to one side (e.g. ``"left:0"``), horizontally.

    Args:
        size: (width, height) of the image in pixels
        view: Target viewport
        align: Optional CSS replacing the horizontal offset

    Returns:
        CSS declarations for the ``style`` attribute

    Examples:
        >>> image_style((600, 960), ViewPort(width=1200, height=1920))
        'width:1200px; height:1920px; top:0.00%; left:0.00%;'
        >>> image_style((1000, 500), ViewPort(width=1000, height=1000))
        'width:1000px; height:500px; top:25.00%; left:0.00%;'
    """
    width, height = fit_size(size[0], size[1], view)
    top = (view.height - height) * 50 / view.height
    left = (view.width - width) * 50 / view.width
    horizontal = align or f"left:{left:.2f}%"
    return f"width:{width}px; height:{height}px; top:{top:.2f}%; {horizontal};"


# Registry of all filters for easy registration with Jinja2
FILTERS = {
    "format_viewport": format_viewport,
    "image_style": image_style,
}
