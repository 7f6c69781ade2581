import ast
import math
import operator
import re
from typing import Any, Callable, Dict

from relay_service.tools.base import BaseTool, error

_ALLOWED_CHARS = re.compile(r"^[0-9a-zA-Z_+\-*/().,%^\s]+$")

_BIN_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "sqrt": math.sqrt,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
    "abs": abs,
    "round": round,
    "floor": math.floor,
    "ceil": math.ceil,
}

_CONSTANTS = {"pi": math.pi, "e": math.e}

MAX_EXPONENT = 10_000


def evaluate(expression: str) -> float | int:
    """Evaluate an arithmetic expression without eval(). Raises ValueError on anything else."""
    if not _ALLOWED_CHARS.match(expression or ""):
        raise ValueError("Invalid characters in expression")
    tree = ast.parse(expression.replace("^", "**"), mode="eval")
    return _eval(tree.body)


def _eval(node: ast.AST) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        left, right = _eval(node.left), _eval(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError("Exponent too large")
        return _BIN_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval(node.operand))
    if isinstance(node, ast.Name) and node.id.lower() in _CONSTANTS:
        return _CONSTANTS[node.id.lower()]
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id.lower() in _FUNCTIONS and not node.keywords:
        return _FUNCTIONS[node.func.id.lower()](*[_eval(a) for a in node.args])
    raise ValueError("Unsupported expression")


class CalculatorTool(BaseTool):
    """Evaluate mathematical expressions. Use this for ANY math calculation."""

    tool_name = "calculator"

    async def run(self, expression: str) -> Dict[str, Any]:
        """
        Args:
            expression: The mathematical expression to evaluate (e.g., '2 + 2', 'sqrt(144)')
        """
        try:
            result = evaluate(str(expression or ""))
        except ValueError as e:
            return error(str(e) if "Invalid" in str(e) else "Failed to evaluate expression")
        except (ArithmeticError, SyntaxError, TypeError):
            return error("Failed to evaluate expression")
        if isinstance(result, float) and result.is_integer():
            result = int(result)
        return {"result": str(result)}
