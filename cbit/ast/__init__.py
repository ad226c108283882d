from cbit.ast.nodes import Block, CbitFor, ExternalLabel, FreeCall, LoopSpec, MethodCall
from cbit.ast.parse import parse_to_ast
