"""
Tests for the vaultscript interpreter.
"""

import base64
import io
import textwrap

import pytest

from vaultscript import tokenize, parse, Interpreter, compile_and_run, RuntimeConfig
from vaultscript.errors import (
    ArityMismatch,
    DivisionByZero,
    IndexOutOfRange,
    InvalidAssignmentTarget,
    ReturnOutsideFunction,
    ScriptRuntimeError,
    StackOverflow,
    TypeMismatch,
    UndefinedFunction,
    UndefinedVariable,
    UnknownLibrary,
    UnknownMethod,
)
from vaultscript.runtime import ValueCipher


def run_script(source, stdin="", output=None, **kwargs):
    """Run a script and return (interpreter, printed text)."""
    source = textwrap.dedent(source)
    output = output if output is not None else io.StringIO()
    interpreter = Interpreter(
        output=output, input_stream=io.StringIO(stdin), source=source, **kwargs
    )
    try:
        interpreter.execute(parse(tokenize(source), source=source))
    finally:
        interpreter.shutdown()
    return interpreter, output.getvalue()


def printed(source, **kwargs):
    """Printed lines of a script."""
    return run_script(source, **kwargs)[1].splitlines()


class ReversingCipher(ValueCipher):
    """Trivially reversible cipher for tests."""

    def encrypt(self, plaintext):
        return "rev:" + plaintext[::-1]

    def decrypt(self, ciphertext):
        return ciphertext[len("rev:"):][::-1]


class TestArithmetic:
    """Test expression evaluation through print."""

    @pytest.mark.parametrize("expr,expected", [
        ("2 + 3", "5"),
        ("2 + 3.0", "5.0"),
        ('"a" + 1', "a1"),
        ("[1, 2] + [3]", "[1, 2, 3]"),
        ("7 / 2", "3"),
        ("7 % 3", "1"),
        ("1 + 2 * 3", "7"),
        ("(1 + 2) * 3", "9"),
        ("-5 + 2", "-3"),
        ("-2.5", "-2.5"),
        ("!0", "true"),
        ("1 < 2 && 2 < 3", "true"),
        ('"abc" == "abc"', "true"),
        ("true", "true"),
    ])
    def test_print_expression(self, expr, expected):
        """Expressions print their canonical form."""
        assert printed(f"print-> {expr};") == [expected]

    def test_result_types(self):
        """Integer arithmetic stays int, mixed arithmetic is float."""
        interpreter, _ = run_script("a = 2 + 3; b = 2 + 3.0; c = \"a\" + 1; d = [1, 2] + [3];")
        assert interpreter.get_variable("a") == 5
        assert isinstance(interpreter.get_variable("a"), int)
        assert interpreter.get_variable("b") == 5.0
        assert isinstance(interpreter.get_variable("b"), float)
        assert interpreter.get_variable("c") == "a1"
        assert interpreter.get_variable("d") == [1, 2, 3]

    def test_numeric_strings_coerce(self):
        """Numeric strings take part in arithmetic."""
        assert printed('x = "5"; print-> x * 2;') == ["10"]

    @pytest.mark.parametrize("expr", ["1 / 0", "1 % 0", "5 / (2 - 2)", '3 % "zero"'])
    def test_division_by_zero(self, expr):
        """Division and modulo by a zero-valued divisor fail."""
        with pytest.raises(DivisionByZero) as exc_info:
            run_script(f"x = {expr};")
        assert exc_info.value.code == "E405"


class TestControlFlow:
    """Test statements and control flow."""

    def test_for_loop_sees_updates(self):
        """for bodies observe updates from the same iteration."""
        interpreter, _ = run_script("x = 0; for(i = 0; i < 3; i++){ x = x + i; }")
        assert interpreter.get_variable("x") == 3
        assert interpreter.get_variable("i") == 3

    def test_while_loop(self):
        """while runs until its condition is falsy."""
        lines = printed("""
            n = 3;
            while(n){
                print-> n;
                n -= 1;
            }
        """)
        assert lines == ["3", "2", "1"]

    def test_if_else_chain(self):
        """else if chains pick the first truthy branch."""
        source = """
            function grade(score){
                if(score >= 90){ return "A"; }
                else if(score >= 80){ return "B"; }
                else { return "C"; }
            };
            print-> grade(95);
            print-> grade(85);
            print-> grade(10);
        """
        assert printed(source) == ["A", "B", "C"]

    def test_truthiness_in_conditions(self):
        """Empty strings and lists are falsy, others truthy."""
        source = """
            if(""){ print-> "empty string"; }
            if([]){ print-> "empty list"; }
            if("0"){ print-> "string zero"; }
            if([0]){ print-> "list zero"; }
        """
        assert printed(source) == ["string zero", "list zero"]

    def test_statements_stop_at_first_failure(self):
        """Nothing after a failing statement runs."""
        output = io.StringIO()
        with pytest.raises(DivisionByZero):
            run_script("print-> 1;\nprint-> 1 / 0;\nprint-> 2;", output=output)
        assert output.getvalue() == "1\n"

    def test_runtime_error_location(self):
        """Runtime errors carry the location of the failing node."""
        with pytest.raises(UndefinedVariable) as exc_info:
            run_script("x = 1;\ny = nope + 1;")
        err = exc_info.value
        assert err.code == "E401"
        assert err.line == 2
        assert err.column == 5
        assert "y = nope + 1;" in str(err)


class TestFunctions:
    """Test function definition and calls."""

    def test_call_and_return(self):
        """Functions return values to their caller."""
        assert printed("function add(a, b){ return a + b; }; print-> add(2, 3);") == ["5"]

    def test_no_return_gives_null(self):
        """A function without return yields null."""
        assert printed("function f(){ x = 1; }; print-> f();") == ["null"]

    def test_return_exits_loops(self):
        """return leaves nested loops at once."""
        source = """
            function first_over(items, limit){
                for(i = 0; i < items.size(); i++){
                    if(items[i] > limit){ return items[i]; }
                }
                return -1;
            };
            print-> first_over([1, 5, 9, 12], 6);
            print-> first_over([1], 6);
        """
        assert printed(source) == ["9", "-1"]

    def test_recursion(self):
        """Functions can call themselves."""
        source = """
            function fact(n){
                if(n <= 1){ return 1; }
                return n * fact(n - 1);
            };
            print-> fact(10);
        """
        assert printed(source) == ["3628800"]

    def test_redefinition_replaces(self):
        """A later definition replaces an earlier one."""
        source = """
            function f(){ return 1; };
            function f(){ return 2; };
            print-> f();
        """
        assert printed(source) == ["2"]

    def test_undefined_function(self):
        """Calling before definition fails."""
        with pytest.raises(UndefinedFunction) as exc_info:
            run_script("print-> later(); function later(){ return 1; };")
        assert exc_info.value.code == "E402"

    def test_arity_mismatch(self):
        """Wrong argument counts fail."""
        with pytest.raises(ArityMismatch) as exc_info:
            run_script("function add(a, b){ return a + b; }; add(1);")
        assert exc_info.value.code == "E403"

    def test_return_outside_function(self):
        """A top-level return is an error, not silently ignored."""
        output = io.StringIO()
        with pytest.raises(ReturnOutsideFunction) as exc_info:
            run_script("print-> 1; return 5; print-> 2;", output=output)
        assert exc_info.value.code == "E412"
        assert output.getvalue() == "1\n"

    def test_return_inside_top_level_loop(self):
        """A return inside a top-level block is also outside any function."""
        with pytest.raises(ReturnOutsideFunction):
            run_script("while(true){ return; }")

    def test_frame_popped_after_error(self):
        """The call stack unwinds when a function fails."""
        source = "function bad(){ return 1 / 0; }; bad();"
        interpreter = Interpreter(output=io.StringIO())
        with pytest.raises(DivisionByZero):
            interpreter.execute(parse(tokenize(source)))
        assert interpreter.call_stack.depth == 1
        interpreter.shutdown()

    def test_unbounded_recursion(self):
        """Runaway recursion fails as a script error and unwinds every frame."""
        source = "function f(n){ return f(n + 1); }; f(0);"
        interpreter = Interpreter(output=io.StringIO())
        try:
            with pytest.raises(StackOverflow) as exc_info:
                interpreter.execute(parse(tokenize(source)))
        finally:
            interpreter.shutdown()
        assert exc_info.value.code == "E414"
        assert interpreter.call_stack.depth == 1


class TestScoping:
    """Test call-stack-wide lookup and assignment."""

    def test_function_mutates_global(self):
        """Assigning an existing global from a function updates it."""
        interpreter, _ = run_script("x = 1; function setx(){ x = 5; }; setx();")
        assert interpreter.get_variable("x") == 5

    def test_new_names_are_local(self):
        """Names first assigned inside a function vanish with its frame."""
        with pytest.raises(UndefinedVariable):
            run_script("function f(){ y = 1; }; f(); print-> y;")

    def test_callee_sees_caller_locals(self):
        """Lookup searches callers' frames as well as globals."""
        source = """
            function inner(){ return secret * 2; };
            function outer(secret){ return inner(); };
            print-> outer(21);
        """
        assert printed(source) == ["42"]

    def test_callee_updates_caller_local(self):
        """Assignment also reaches the nearest caller frame holding the name."""
        source = """
            function bump(){ count = count + 1; };
            function run(count){ bump(); bump(); return count; };
            print-> run(0);
        """
        assert printed(source) == ["2"]

    def test_parameter_shadows_global(self):
        """A parameter hides a global of the same name."""
        interpreter, out = run_script("""
            n = 100;
            function show(n){ print-> n; n = 7; };
            show(1);
        """)
        assert out.splitlines() == ["1"]
        assert interpreter.get_variable("n") == 100


class TestUnaryAndAssignment:
    """Test increments, compound assignment and indexing."""

    def test_prefix_and_postfix_values(self):
        """Postfix yields the old value, prefix the new one."""
        interpreter, _ = run_script("i = 1; a = i++; b = ++i; c = i--; d = --i;")
        assert interpreter.get_variable("a") == 1
        assert interpreter.get_variable("b") == 3
        assert interpreter.get_variable("c") == 3
        assert interpreter.get_variable("d") == 1
        assert interpreter.get_variable("i") == 1

    def test_increment_requires_variable(self):
        """++ on anything but a variable fails."""
        with pytest.raises(InvalidAssignmentTarget) as exc_info:
            run_script("items = [1]; items[0]++;")
        assert exc_info.value.code == "E404"

    def test_increment_undefined(self):
        """++ on an unknown name fails."""
        with pytest.raises(UndefinedVariable):
            run_script("ghost++;")

    def test_compound_assignment(self):
        """Compound operators apply to the current value."""
        interpreter, _ = run_script("x = 10; x += 5; x -= 3; x *= 2; x /= 4;")
        assert interpreter.get_variable("x") == 6

    def test_compound_on_undefined(self):
        """Compound assignment needs an existing variable."""
        with pytest.raises(UndefinedVariable):
            run_script("total += 1;")

    def test_assignment_is_an_expression(self):
        """Assignment returns the stored value."""
        interpreter, _ = run_script("a = b = 4;")
        assert interpreter.get_variable("a") == 4
        assert interpreter.get_variable("b") == 4

    def test_index_read_and_write(self):
        """Index assignment mutates the list in place."""
        source = """
            items = [10, 20, 30];
            items[1] = 99;
            items[2] += 1;
            alias = items;
            alias[0] = "first";
            print-> items;
            print-> items["1"];
            print-> items[2.7];
        """
        assert printed(source) == ["[first, 99, 31]", "99", "31"]

    def test_nested_index(self):
        """Indexing chains into nested lists."""
        assert printed("grid = [[1, 2], [3, 4]]; grid[1][0] = 7; print-> grid;") == ["[[1, 2], [7, 4]]"]

    @pytest.mark.parametrize("source", ["x = [1, 2][2];", "x = [1][-1];", "l = []; l[0] = 1;"])
    def test_index_out_of_range(self, source):
        """Indexes outside the list fail."""
        with pytest.raises(IndexOutOfRange) as exc_info:
            run_script(source)
        assert exc_info.value.code == "E406"

    @pytest.mark.parametrize("source", ['s = "abc"; x = s[0];', "x = [1][true];", 'x = [1]["a"];'])
    def test_index_type_mismatch(self, source):
        """Only lists can be indexed, and only by integer-like values."""
        with pytest.raises(TypeMismatch) as exc_info:
            run_script(source)
        assert exc_info.value.code == "E413"


class TestEncryptedVariables:
    """Test '@ENC' variables."""

    @pytest.mark.parametrize("literal,expected", [
        ("42", 42),
        ("2.5", 2.5),
        ("true", True),
        ('"alice"', "alice"),
        ("[1, 2, [3]]", [1, 2, [3]]),
        ('["x", "y"]', ["x", "y"]),
    ])
    def test_round_trip(self, literal, expected):
        """Reading an encrypted variable decrypts it back to the value."""
        interpreter, _ = run_script(f"@ENCsecret = {literal}; copy = @ENCsecret;")
        assert interpreter.get_variable("secret") == expected
        assert interpreter.get_variable("copy") == expected

    def test_print_shows_ciphertext(self):
        """print surfaces the ciphertext, never the plaintext."""
        interpreter, out = run_script("@ENCpin = 1234; print-> @ENCpin;")
        line = out.strip()
        assert line != "1234"
        assert line == interpreter.get_variable("pin", decrypt=False)
        # AES-CBC output is base64 of whole blocks
        assert len(base64.b64decode(line)) % 16 == 0

    def test_stored_encrypted(self):
        """The binding holds ciphertext and is flagged encrypted."""
        interpreter, _ = run_script("@ENCpin = 1234;")
        binding = interpreter.call_stack.global_scope.get("pin")
        assert binding.encrypted
        assert binding.value != 1234

    def test_arithmetic_decrypts(self):
        """Encrypted values take part in arithmetic transparently."""
        interpreter, _ = run_script("@ENCbalance = 100; after = @ENCbalance - 30;")
        assert interpreter.get_variable("after") == 70

    def test_unmarked_read(self):
        """The marker is optional when reading."""
        interpreter, _ = run_script("@ENCk = 5; v = k * 2;")
        assert interpreter.get_variable("v") == 10

    def test_compound_keeps_encryption(self):
        """Compound assignment on an encrypted variable stays encrypted."""
        interpreter, _ = run_script("@ENCc = 10; c += 5;")
        assert interpreter.call_stack.global_scope.get("c").encrypted
        assert interpreter.get_variable("c") == 15

    def test_increment_keeps_encryption(self):
        """++ re-encrypts and yields plaintext values."""
        interpreter, _ = run_script("@ENCn = 1; old = @ENCn++; new = ++n;")
        assert interpreter.call_stack.global_scope.get("n").encrypted
        assert interpreter.get_variable("n") == 3
        assert interpreter.get_variable("old") == 1
        assert interpreter.get_variable("new") == 3

    def test_plain_assignment_drops_encryption(self):
        """An unmarked plain assignment stores plaintext."""
        interpreter, _ = run_script("@ENCx = 1; x = 2;")
        binding = interpreter.call_stack.global_scope.get("x")
        assert not binding.encrypted
        assert binding.value == 2

    def test_encrypted_assignment_returns_ciphertext(self):
        """The value of an encrypted assignment is the stored ciphertext."""
        interpreter, _ = run_script("copy = @ENCx = 9;")
        assert interpreter.get_variable("copy") == interpreter.get_variable("x", decrypt=False)

    def test_encrypted_list_index(self):
        """Indexing an encrypted list works on the decrypted copy."""
        interpreter, _ = run_script("@ENCitems = [4, 5, 6]; v = @ENCitems[1];")
        assert interpreter.get_variable("v") == 5

    def test_pluggable_cipher(self):
        """Any ValueCipher can stand behind encrypted variables."""
        interpreter, out = run_script(
            "@ENCword = \"hello\"; print-> @ENCword; w = @ENCword;",
            cipher=ReversingCipher(),
        )
        assert out.strip() == "rev:olleh"
        assert interpreter.get_variable("w") == "hello"

    def test_configured_key(self):
        """A configured key changes the ciphertext but not the round trip."""
        config = RuntimeConfig(encryption_key="fedcba9876543210")
        custom, custom_out = run_script("@ENCv = 77; print-> @ENCv;", config=config)
        _, default_out = run_script("@ENCv = 77; print-> @ENCv;")
        assert custom_out != default_out
        assert custom.get_variable("v") == 77


class TestInput:
    """Test the input statement."""

    def test_input_parses_value(self):
        """Input text is sniffed into a typed value."""
        interpreter, out = run_script('input-> "Age?" -> age; next = age + 1;', stdin="41\n")
        assert out == "Age? "
        assert interpreter.get_variable("next") == 42

    def test_input_list(self):
        """Bracketed input becomes a list."""
        interpreter, _ = run_script('input-> "Values?" -> vals;', stdin='[1, "two", 3.5]\n')
        assert interpreter.get_variable("vals") == [1, "two", 3.5]

    def test_input_unquoted_list(self):
        """Unquoted list elements are trimmed."""
        interpreter, _ = run_script('input-> "Names?" -> names;', stdin="[a, b]\n")
        assert interpreter.get_variable("names") == ["a", "b"]

    def test_encrypted_input(self):
        """Input into a marked variable is encrypted."""
        interpreter, _ = run_script('input-> "PIN?" -> @ENCpin;', stdin="1234\n")
        assert interpreter.call_stack.global_scope.get("pin").encrypted
        assert interpreter.get_variable("pin") == 1234

    def test_end_of_input(self):
        """End of input reads as an empty string."""
        interpreter, _ = run_script('input-> "Name?" -> name;', stdin="")
        assert interpreter.get_variable("name") == ""

    def test_prompt_must_be_string(self):
        """A non-string prompt fails."""
        with pytest.raises(TypeMismatch):
            run_script("input-> 5 -> x;")

    def test_target_must_be_variable(self):
        """Input cannot store into an index expression."""
        with pytest.raises(InvalidAssignmentTarget):
            run_script('items = [0]; input-> "v?" -> items[0];', stdin="1\n")


class TestLibrariesAndMethods:
    """Test use statements and method dispatch."""

    def test_list_methods(self):
        """add, remove, size and numInstances on lists."""
        source = """
            items = [1, 2];
            items.add(3);
            items.remove(0);
            print-> items;
            print-> items.size();
            print-> items.numInstances();
        """
        assert printed(source) == ["[2, 3]", "2", "2"]

    def test_string_length(self):
        """length() on strings."""
        assert printed('print-> "hello".length();') == ["5"]

    def test_unknown_method(self):
        """Unknown methods fail with E411."""
        with pytest.raises(UnknownMethod) as exc_info:
            run_script("x = 5; x.explode();")
        assert exc_info.value.code == "E411"

    def test_wrong_method_arguments(self):
        """A known method with the wrong argument count fails."""
        with pytest.raises(UnknownMethod):
            run_script("items = []; items.add();")

    def test_use_blockchain(self):
        """use binds the library globally."""
        source = """
            use blockchain;
            blockchain.init("my-key", 100);
            blockchain.transaction("bob", 30);
            print-> blockchain.showCurrentBalance();
        """
        lines = printed(source)
        assert lines[-1] == "70.0"
        assert "[blockchain] Transaction successful!" in lines

    def test_use_inside_function_binds_globally(self):
        """A library used inside a function stays bound afterwards."""
        source = """
            function setup(){ use data_science; };
            setup();
            print-> data_science.calculateMean([1, 2, 3]);
        """
        assert printed(source)[-1] == "2.0"

    @pytest.mark.parametrize("name", ["ml", "database", "nothing"])
    def test_unknown_library(self, name):
        """Unregistered libraries fail with E410."""
        with pytest.raises(UnknownLibrary) as exc_info:
            run_script(f"use {name};")
        assert exc_info.value.code == "E410"


class TestHostApi:
    """Test the embedding API."""

    def test_call_function(self):
        """Hosts can call script functions with Python values."""
        interpreter, _ = run_script("function add(a, b){ return a + b; };")
        assert interpreter.call_function("add", [2, 3]) == 5

    def test_call_function_errors(self):
        """Host calls check existence and arity."""
        interpreter, _ = run_script("function one(a){ return a; };")
        with pytest.raises(UndefinedFunction):
            interpreter.call_function("two", [])
        with pytest.raises(ArityMismatch):
            interpreter.call_function("one", [])

    def test_use(self):
        """Hosts can bind libraries."""
        interpreter = Interpreter(output=io.StringIO())
        ledger = interpreter.use("blockchain")
        assert interpreter.get_variable("blockchain") is ledger

    def test_compile_and_run_success(self):
        """compile_and_run returns the interpreter on success."""
        out = io.StringIO()
        result = compile_and_run("x = 6 * 7; print-> x;", output=out)
        assert result.success
        assert out.getvalue() == "42\n"
        assert result.interpreter.get_variable("x") == 42
        result.interpreter.shutdown()

    def test_compile_and_run_parse_error(self):
        """Parse errors come back as a failed result."""
        result = compile_and_run("print-> ;")
        assert not result.success
        assert result.diagnostic.code == "E101"
        assert result.interpreter is None

    def test_compile_and_run_runtime_error(self):
        """Runtime errors keep the interpreter for inspection."""
        result = compile_and_run("x = 1; y = x / 0;", output=io.StringIO())
        assert not result.success
        assert result.diagnostic.code == "E405"
        assert "division by zero" in result.error_message
        assert result.interpreter.get_variable("x") == 1
        result.interpreter.shutdown()

    def test_all_errors_are_runtime_errors(self):
        """Every runtime failure derives from ScriptRuntimeError."""
        for source in ("x = y;", "f();", "x = 1 / 0;", "use ml;"):
            with pytest.raises(ScriptRuntimeError):
                run_script(source)
