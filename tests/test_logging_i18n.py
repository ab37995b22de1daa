import logging
import os
import tempfile
import unittest

from chrome_shift_tracer import i18n
from chrome_shift_tracer.config import TracerConfig
from chrome_shift_tracer.logger import LOG_FORMAT, PACKAGE_LOGGER, setup_logging, setup_logging_from_config


class TestSetupLogging(unittest.TestCase):
    def tearDown(self):
        logger = logging.getLogger(PACKAGE_LOGGER)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logging()
        logger = setup_logging("debug")
        self.assertEqual(len(logger.handlers), 1)
        self.assertEqual(logger.level, logging.DEBUG)
        self.assertEqual(logger.handlers[0].formatter._fmt, LOG_FORMAT)

    def test_level_from_config(self):
        logger = setup_logging_from_config(TracerConfig(log_level="warning"))
        self.assertEqual(logger.level, logging.WARNING)

    def test_log_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "tracer.log")
            logger = setup_logging(logging.INFO, path)
            logging.getLogger("chrome_shift_tracer.run").info("captured trace")
            for handler in logger.handlers:
                handler.flush()
            with open(path, encoding="utf-8") as f:
                line = f.read()
            self.tearDown()
        self.assertIn("[INFO]", line)
        self.assertIn("captured trace", line)


class TestTranslations(unittest.TestCase):
    def tearDown(self):
        i18n.load_translations("en")

    def test_english_formats_key(self):
        i18n.load_translations("en")
        self.assertEqual(i18n._("Tracing started."), "Tracing started.")
        self.assertEqual(i18n._("Config file not found at {path}", path="a.yaml"), "Config file not found at a.yaml")

    def test_chinese_table(self):
        self.assertEqual(i18n.load_translations("zh"), "zh")
        self.assertEqual(i18n._("Tracing started."), "跟踪已开始。")
        self.assertEqual(i18n._("Unknown config keys: {keys}", keys="x"), "未知的配置项: x")

    def test_untranslated_key_falls_back(self):
        i18n.load_translations("zh")
        self.assertEqual(i18n._("Handler {name} failed: {e}", name="Meta", e="boom"), "Handler Meta failed: boom")

    def test_placeholder_named_key(self):
        i18n.load_translations("en")
        self.assertEqual(i18n._("Missing '{key}'", key="name"), "Missing 'name'")

    def test_missing_placeholder_falls_back_to_key(self):
        i18n._translations["Found matching tab: {url}"] = "标签页: {address}"
        with self.assertLogs("chrome_shift_tracer.i18n", level="WARNING"):
            self.assertEqual(i18n._("Found matching tab: {url}", url="u"), "Found matching tab: u")


if __name__ == "__main__":
    unittest.main()
