import contextlib
import io
import json
import unittest

from scratch_mini.main import build_demo_stage, build_parser, main


class CliTests(unittest.TestCase):
    def _run(self, argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = main(argv)
        return code, out.getvalue()

    def test_headless_run_prints_final_state(self):
        code, output = self._run(["run", "--headless", "--time-scale", "0"])
        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual([s["name"] for s in payload["sprites"]], ["Comet", "Bolt", "Nova"])
        for sprite in payload["sprites"]:
            self.assertIsNone(sprite["current_animation"])
            self.assertFalse(sprite["flash"])

    def test_sprites_command(self):
        code, output = self._run(["sprites"])
        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(len(payload), 3)
        self.assertEqual(payload[0]["x"], 60)

    def test_command_required(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                build_parser().parse_args([])

    def test_demo_scripts(self):
        stage = build_demo_stage()
        comet, bolt, nova = stage.sprites
        self.assertEqual([b.type for b in comet.scripts[0].blocks], ["say", "repeat", "turn", "move"])
        self.assertEqual(comet.scripts[0].blocks[1].children[0].params, {"steps": 25})
        self.assertEqual(bolt.scripts[0].blocks[0].params, {"x": 150, "y": 120})
        self.assertEqual(nova.scripts[0].blocks[0].params["times"], 8)


if __name__ == "__main__":
    unittest.main()
