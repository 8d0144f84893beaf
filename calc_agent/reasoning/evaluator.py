"""
Expression evaluator behind the Calculator action.
No exec, no eval of arbitrary code: the expression is parsed with ast and only numbers,
arithmetic operators, a few constants and single-argument math functions are allowed.
"""
import ast
import math
import operator

from calc_agent.errors import EvaluatorError

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

CONSTANTS = {
    "pi": math.pi,
    "e": math.e,
    "tau": math.tau,
}

TOO_DEEP = "expression too deeply nested"

FUNCTIONS = {
    "sqrt": math.sqrt,
    "abs": abs,
    "floor": math.floor,
    "ceil": math.ceil,
    "round": round,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "log": math.log,
    "log10": math.log10,
    "log2": math.log2,
    "exp": math.exp,
}


def _eval_node(node: ast.AST) -> float:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return float(node.value)
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        return float(_BIN_OPS[type(node.op)](left, right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return float(_UNARY_OPS[type(node.op)](_eval_node(node.operand)))
    if isinstance(node, ast.Name):
        if node.id in CONSTANTS:
            return CONSTANTS[node.id]
        raise EvaluatorError(f"unknown name '{node.id}'")
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
        func_name = node.func.id
        if func_name not in FUNCTIONS:
            raise EvaluatorError(f"unknown function '{func_name}'")
        if node.keywords or len(node.args) != 1:
            raise EvaluatorError(f"{func_name} expects exactly 1 argument")
        return float(FUNCTIONS[func_name](_eval_node(node.args[0])))
    raise EvaluatorError(f"unsupported expression element: {type(node).__name__}")


def evaluate(expression: str) -> float:
    """
    Evaluate one arithmetic expression and return the result as a float.
    '^' is accepted as power (MathJS style). Raises EvaluatorError on any failure.
    """
    expr = (expression or "").strip()
    if not expr:
        raise EvaluatorError("empty expression")
    try:
        tree = ast.parse(expr.replace("^", "**"), mode="eval")
    except SyntaxError as e:
        raise EvaluatorError(f"invalid syntax in '{expr}'") from e
    except (RecursionError, MemoryError) as e:
        raise EvaluatorError(TOO_DEEP) from e
    try:
        result = _eval_node(tree.body)
    except ZeroDivisionError as e:
        raise EvaluatorError("division by zero") from e
    except (ValueError, OverflowError, TypeError) as e:
        raise EvaluatorError(str(e)) from e
    except (RecursionError, MemoryError) as e:
        raise EvaluatorError(TOO_DEEP) from e
    if math.isnan(result):
        raise EvaluatorError("result is not a number")
    return result


def format_number(value: float) -> str:
    """Render a result the way observations show numbers: 4.0, 313429.0, 0.5."""
    return repr(float(value))
