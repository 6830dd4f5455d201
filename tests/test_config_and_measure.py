from __future__ import annotations

import unittest

import _support  # noqa: F401  (puts src/ on sys.path)

from archdraw.config import RenderConfig
from archdraw.errors import ConfigInvalid, ConfigMissing
from archdraw.measure import Size, TextConstraints, TextMeasurer, measure


class RenderConfigTests(unittest.TestCase):
    def test_icon_size_is_required(self) -> None:
        with self.assertRaises(ConfigMissing) as ctx:
            RenderConfig.from_mapping({"fontSize": 12})
        self.assertEqual(ctx.exception.option, "iconSize")
        self.assertEqual(ctx.exception.code, "E_CONFIG_MISSING")

    def test_cosmetic_options_fall_back(self) -> None:
        config = RenderConfig.from_mapping({"iconSize": 80})
        self.assertEqual(config.icon_size, 80.0)
        self.assertEqual(config.label_width, 120.0)
        self.assertEqual(config.half_icon_size, 40.0)
        self.assertEqual(config.layer_order, ("edges", "groups", "nodes"))

    def test_options_are_parsed(self) -> None:
        config = RenderConfig.from_mapping(
            {
                "iconSize": "64",
                "labelWidthFactor": 2,
                "direction": "tb",
                "layoutEngine": "Layered",
                "drawOrder": "nodes-groups-edges",
                "unrelated": True,
            }
        )
        self.assertEqual(config.icon_size, 64.0)
        self.assertEqual(config.label_width, 128.0)
        self.assertEqual(config.direction, "TB")
        self.assertEqual(config.layout_engine, "layered")
        self.assertEqual(config.layer_order, ("nodes", "groups", "edges"))

    def test_invalid_values(self) -> None:
        for options in (
            {"iconSize": 0},
            {"iconSize": "big"},
            {"iconSize": True},
            {"iconSize": 80, "direction": "diagonal"},
            {"iconSize": 80, "nodeGap": -1},
            {"iconSize": 80, "drawOrder": "random"},
            {"iconSize": float("nan")},
            {"iconSize": "inf"},
            {"iconSize": 80, "padding": float("inf")},
            {"iconSize": 80, "fontSize": "-Infinity"},
        ):
            with self.subTest(options=options):
                with self.assertRaises(ConfigInvalid):
                    RenderConfig.from_mapping(options)


class MeasurementTests(unittest.TestCase):
    def test_empty_text_has_zero_area(self) -> None:
        self.assertEqual(measure(""), Size(0.0, 0.0))
        self.assertEqual(measure("   ", TextConstraints(max_width=10)), Size(0.0, 0.0))

    def test_measure_is_deterministic(self) -> None:
        first = measure("Database", TextConstraints(font_size=16))
        second = measure("Database", TextConstraints(font_size=16))
        self.assertEqual(first, second)
        self.assertGreater(first.width, 0)
        self.assertGreater(first.height, 0)

    def test_wrapping_respects_max_width(self) -> None:
        measurer = TextMeasurer()
        text = "a b c d e f g h i j k l"
        unwrapped = measurer.layout_text(text, TextConstraints(font_size=16))
        wrapped = measurer.layout_text(text, TextConstraints(font_size=16, max_width=40))
        self.assertEqual(len(unwrapped.lines), 1)
        self.assertGreater(len(wrapped.lines), 1)
        self.assertLessEqual(wrapped.width, 40)
        self.assertGreater(wrapped.height, unwrapped.height)

    def test_larger_font_is_wider(self) -> None:
        small = measure("Gateway", TextConstraints(font_size=10))
        large = measure("Gateway", TextConstraints(font_size=30))
        self.assertGreater(large.width, small.width)


if __name__ == "__main__":
    unittest.main()
