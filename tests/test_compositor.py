import numpy as np
import pytest

from imaging import compositor, encoder
from imaging.models import ImageSpec, RenderOptions


def make(width=200, height=100, scale=1, background="3b82f6", background2=None, foreground="ffffff", **options):
    spec = ImageSpec(
        width=width,
        height=height,
        scale=scale,
        background=background,
        background2=background2,
        foreground=foreground,
    )
    options.setdefault("border_color", foreground)
    options.setdefault("pattern_color", foreground)
    return spec, RenderOptions(**options)


def test_output_size_includes_scale():
    spec, options = make(120, 80, scale=3, text="hi")
    assert compositor.render(spec, options).size == (360, 240)


def test_solid_fill():
    spec, options = make()
    image = compositor.render(spec, options)
    assert image.getpixel((100, 50)) == (59, 130, 246, 255)


def test_gradient_runs_corner_to_corner():
    spec, options = make(background="000000", background2="ffffff")
    image = compositor.render(spec, options)
    top_left = image.getpixel((0, 0))
    bottom_right = image.getpixel((199, 99))
    assert top_left[0] < 10
    assert bottom_right[0] > 245


def test_rounded_corners_are_transparent():
    spec, options = make(radius=30)
    image = compositor.render(spec, options)
    assert image.getpixel((0, 0))[3] == 0
    assert image.getpixel((100, 50))[3] == 255


def test_pattern_stays_inside_rounded_fill():
    spec, options = make(radius=30, pattern="checkerboard", pattern_color="ff0000")
    image = compositor.render(spec, options)
    assert image.getpixel((0, 0))[3] == 0


def test_border_is_drawn_on_edge():
    spec, options = make(border=4, border_color="ff0000")
    image = compositor.render(spec, options)
    assert image.getpixel((0, 50))[:3] == (255, 0, 0)
    assert image.getpixel((100, 50))[:3] == (59, 130, 246)


def test_shadow_shows_below_rounded_fill():
    spec, options = make(radius=40, shadow=20, shadow_color="000000")
    image = compositor.render(spec, options)
    # Bottom-left corner sits outside the fill but inside the offset shadow.
    assert image.getpixel((8, 94))[3] > 0


def test_border_is_drawn_after_blur():
    spec, options = make(border=2, border_color="ff0000", blur=5)
    sharp_spec, sharp_options = make(border=2, border_color="ff0000")
    blurred = compositor.render(spec, options)
    sharp = compositor.render(sharp_spec, sharp_options)
    # Border is drawn after the blur, so the edge stays crisp.
    assert blurred.getpixel((0, 50)) == sharp.getpixel((0, 50))


def test_identical_input_gives_identical_bytes():
    spec, options = make(text="Same", pattern="dots", border=3, radius=10)
    first = encoder.encode(compositor.render(spec, options))[0]
    second = encoder.encode(compositor.render(spec, options))[0]
    assert first == second


def test_zero_noise_leaves_pixels_unchanged():
    spec, options = make()
    image = compositor.render(spec, options)
    assert compositor.apply_noise(image, 0) is image


def test_noise_changes_colour_but_not_alpha():
    spec, options = make(radius=20)
    image = compositor.render(spec, options)
    noisy = compositor.apply_noise(image, 50, np.random.default_rng(3))
    before, after = np.asarray(image), np.asarray(noisy)
    assert not np.array_equal(before[..., :3], after[..., :3])
    assert np.array_equal(before[..., 3], after[..., 3])
    assert np.abs(before[..., :3].astype(int) - after[..., :3].astype(int)).max() <= 50


@pytest.mark.parametrize("width, height", [(400, 200), (200, 400), (1000, 300)])
def test_dot_count_follows_spacing(width, height):
    spacing = min(width, height) / 20
    centers = list(compositor.dot_centers(width, height))
    columns = {x for x, _ in centers}
    rows = {y for _, y in centers}
    assert abs(len(columns) - width / spacing) <= 1
    assert abs(len(rows) - height / spacing) <= 1


def test_pattern_spacing_never_below_one():
    assert compositor.pattern_spacing(10, 10) == 1.0


@pytest.mark.parametrize("pattern", ["dots", "stripes", "checkerboard", "grid"])
def test_every_pattern_changes_the_fill(pattern):
    spec, options = make(pattern=pattern, pattern_color="ff0000")
    plain_spec, plain_options = make()
    patterned = np.asarray(compositor.render(spec, options))
    plain = np.asarray(compositor.render(plain_spec, plain_options))
    assert not np.array_equal(patterned, plain)


def test_font_size_follows_size_option_and_scale():
    spec, options = make(200, 100, scale=2, size=30)
    assert compositor.font_size_for(spec, options) == 60
    spec, options = make(200, 100)
    assert compositor.font_size_for(spec, options) == 10


@pytest.mark.parametrize("align", ["top", "center", "bottom"])
def test_text_is_drawn(align):
    spec, options = make(text="Hello", align=align, size=30)
    plain_spec, plain_options = make()
    with_text = np.asarray(compositor.render(spec, options))
    plain = np.asarray(compositor.render(plain_spec, plain_options))
    assert not np.array_equal(with_text, plain)


def test_blur_softens_rounded_edge():
    sharp_spec, sharp_options = make(radius=30)
    spec, options = make(radius=30, blur=5)
    assert compositor.render(sharp_spec, sharp_options).getpixel((6, 6))[3] == 0
    assert compositor.render(spec, options).getpixel((6, 6))[3] > 0
