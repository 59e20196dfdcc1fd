"""
Tests for the flask CLI commands.
"""


class TestCli:
    def test_solve(self, runner):
        result = runner.invoke(args=["duel-solve", "4", "6", "10", "--target", "40"])
        assert result.exit_code == 0
        assert result.output.strip().endswith("= 40")

    def test_solve_with_variable(self, runner):
        result = runner.invoke(args=["duel-solve", "3", "5", "-t", "17", "-v", "x=4"])
        assert result.exit_code == 0

    def test_solve_unreachable(self, runner):
        result = runner.invoke(args=["duel-solve", "1", "1", "--target", "100"])
        assert result.exit_code == 1
        assert "No solution" in result.output

    def test_reachable(self, runner):
        result = runner.invoke(args=["duel-reachable", "2", "3", "--difficulty", "easy"])
        assert result.exit_code == 0
        assert "4 reachable" in result.output
        assert "1 2 3 5" in result.output

    def test_profiles(self, runner):
        result = runner.invoke(args=["duel-profiles"])
        for key in ("easy", "medium", "hard"):
            assert key in result.output

    def test_lobbies_empty(self, runner):
        result = runner.invoke(args=["duel-lobbies"])
        assert "No lobbies." in result.output
